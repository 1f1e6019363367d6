"""Input parsers: files on disk or upload -> registered layers."""
