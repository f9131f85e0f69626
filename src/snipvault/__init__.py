"""
snipvault - a local-first snippet manager.

Snippets are stored one per markdown file with a YAML metadata block,
indexed in memory and searched with fuzzy title matching plus tag and
body substring matching.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("snipvault")
except PackageNotFoundError:
    __version__ = "0.3.0"
