from __future__ import annotations

import re
from dataclasses import dataclass

# Module paths may contain brackets (app/[locale]/page.ts) so the module part
# stops at the first "][" and the text keeps everything up to the final "]".
_IDENTITY_PATTERN = re.compile(r"^\[(.+?)\]\[(.*)\]$", re.DOTALL)


@dataclass(frozen=True)
class IdentityParts:
    module_path: str
    text: str


def format_identity(module_path: str, text: str) -> str:
    return f"[{module_path}][{text}]"


def parse_identity(identity: str) -> IdentityParts | None:
    match = _IDENTITY_PATTERN.match(identity.strip())
    if match is None:
        return None
    return IdentityParts(module_path=match.group(1), text=match.group(2))


def is_identity(value: str) -> bool:
    return parse_identity(value) is not None
