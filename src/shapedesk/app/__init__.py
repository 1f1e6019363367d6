"""HTTP shell for the viewer UI."""
