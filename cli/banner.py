"""ASCII art banner for the web-observer CLI."""

BANNER = r"""
  +------------------------------------------+
  |   w e b - o b s e r v e r   ( w o )      |
  +------------------------------------------+
"""

TAGLINE = "Scheduled web page extraction and local-model summaries"


def print_banner() -> None:
    """Print the banner and tagline."""
    print(BANNER)
    print(f"  {TAGLINE}")
    print()
