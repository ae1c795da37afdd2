"""Extraction of supported Kubernetes versions from RKE release notes."""

import re
from typing import Dict, Optional, Tuple

from packaging import version

from rkeupgrader.models import SupportedVersion, VersionSet


class VersionExtractor:
    """Turns free-form release notes into a sorted, deduplicated VersionSet.

    Release notes are the only machine-readable source for the Kubernetes
    versions an RKE release supports, so the text format is kept behind this
    one class.
    """

    PATTERN = re.compile(r"v(\d+\.\d+\.\d+)-([a-z]+)(\d+)-(\d+)")

    def extract(self, text: Optional[str]) -> VersionSet:
        if not text:
            return ()

        best: Dict[str, Tuple[Tuple[int, int], str]] = {}
        for match in self.PATTERN.finditer(text):
            base = match.group(1)
            qualifier = (int(match.group(3)), int(match.group(4)))
            current = best.get(base)
            if current is None or qualifier > current[0]:
                best[base] = (qualifier, match.group(0))

        ordered = sorted(best, key=version.parse)
        return tuple(SupportedVersion(full=best[base][1], base=base) for base in ordered)
