"""Test fixtures for GopherKit tests.

Fixtures are organized by type:

- archives: Go release archives on disk, well-formed and hostile
- listings: HTML release listings in the shape of the download page

Import helpers in your tests using:
    from tests.fixtures.archives import go_tree
    from tests.fixtures.listings import build_listing, listing_row
"""

__all__ = [
    "archives",
    "listings",
]
