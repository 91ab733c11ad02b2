"""
Generated directory listings.

When a directory has no index document the server answers with a
gemtext page linking every entry:

    # docs
    => /docs/guide.gmi /docs/guide.gmi
    => /docs/images/ /docs/images/

Entries are sorted by name so the same directory always renders the
same bytes. Dot-files are left out unless show_hidden is set; they are
usually editor droppings or VCS metadata nobody meant to publish.

A name that is not valid UTF-8 keeps its raw bytes in the link,
percent-encoded, and shows U+FFFD in the label.
"""

import os
from pathlib import Path
from urllib.parse import quote


class DirectoryLister:
    """Renders a directory as a gemtext link list."""

    def __init__(self, show_hidden: bool = False):
        self.show_hidden = show_hidden

    def entries(self, directory: Path) -> list[os.DirEntry]:
        """
        Directory entries to list, sorted by name.

        Raises:
            OSError: The directory cannot be read.
        """
        with os.scandir(directory) as it:
            found = [
                entry for entry in it
                if self.show_hidden or not entry.name.startswith(".")
            ]
        return sorted(found, key=lambda entry: entry.name)

    def render(self, directory: Path, url_path: str = "/") -> str:
        """
        Render the listing for ``directory``.

        Args:
            directory: Filesystem path of the directory.
            url_path: Site path of the directory, e.g. "/docs/". Links are
                      built from it, so they are absolute within the site.

        Raises:
            OSError: The directory cannot be read.
        """
        base = "/" + url_path.strip("/")
        if not base.endswith("/"):
            base += "/"

        heading = url_path.strip("/").rsplit("/", 1)[-1] or "/"
        lines = [f"# {heading}"]

        for entry in self.entries(directory):
            label = base + entry.name
            if entry.is_dir():
                label += "/"
            # Undecodable names come back from scandir surrogate-escaped
            raw = os.fsencode(label)
            lines.append(f"=> {quote(raw)} {raw.decode('utf-8', 'replace')}")

        return "\n".join(lines) + "\n"
