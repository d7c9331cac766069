"""Core modules for the Margin Monitor application."""

from . import analytics, parsing, settings, sources, summarize, synth, utils, viz

__all__ = [
	"analytics",
	"parsing",
	"settings",
	"sources",
	"summarize",
	"synth",
	"utils",
	"viz",
]
