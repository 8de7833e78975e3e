"""Sync a folder of Markdown files to a Notion database."""

__version__ = "0.1.0"
