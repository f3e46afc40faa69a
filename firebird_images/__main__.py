"""Allow running as `python -m firebird_images`."""

from firebird_images.cli import app

app(prog_name="fbimages")
