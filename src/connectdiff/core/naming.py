"""
Name encoding for snapshot file names.

Resource names are free text. Content files are stored as
`<prefix>_<token>.json` where `token` keeps the unreserved characters
`A-Z a-z 0-9 . ~ _ -` and percent-encodes every other UTF-8 byte.
"""

from __future__ import annotations

import codecs
import locale
import logging
import sys
from typing import Iterable, Optional, Union
from urllib.parse import quote

from .errors import EncodingUnsupported

log = logging.getLogger(__name__)

REFERENCE_CHAR = "\u00e9"  # e acute
REFERENCE_TOKEN = "%C3%A9"


def encode_name(name: str) -> str:
    """Return the filesystem-safe token for `name` (uppercase `%XX` per UTF-8 byte)."""
    # quote() always keeps ALPHA / DIGIT / "_.-~"; safe="" drops "/" from the default set
    return quote(name, safe="", encoding="utf-8", errors="strict")


def content_filename(prefix: str, name: str, ext: str = "json") -> str:
    return f"{prefix}_{encode_name(name)}.{ext}"


def _host_encodings() -> Iterable[str]:
    seen = set()
    for enc in (locale.getpreferredencoding(False), sys.getfilesystemencoding()):
        if not enc:
            continue
        norm = codecs.lookup(enc).name
        if norm not in seen:
            seen.add(norm)
            yield enc


def host_encodes_reference(encodings: Optional[Iterable[str]] = None) -> bool:
    """True when every host encoding turns the reference character into `C3 A9`."""
    expected = REFERENCE_CHAR.encode("utf-8")
    for enc in (encodings if encodings is not None else _host_encodings()):
        try:
            if REFERENCE_CHAR.encode(enc) != expected:
                return False
        except (LookupError, UnicodeEncodeError):
            return False
    return encode_name(REFERENCE_CHAR) == REFERENCE_TOKEN


def check_host_encoding(
    allow_override: bool = False,
    encodings: Optional[Iterable[str]] = None,
    logger: Optional[Union[logging.Logger, logging.LoggerAdapter]] = None,
) -> None:
    """
    Startup precondition for extended characters in resource names.

    Raises EncodingUnsupported unless the host handles the reference character,
    or `allow_override` is set (then only a warning is logged).
    """
    encodings = list(encodings) if encodings is not None else list(_host_encodings())
    if host_encodes_reference(encodings):
        return
    msg = (
        f"Host encoding ({', '.join(encodings) or 'unknown'}) cannot represent "
        f"{REFERENCE_CHAR!r} as {REFERENCE_TOKEN}; set a UTF-8 locale (e.g. LANG=en_US.UTF-8) "
        "or pass --extended-ok to continue anyway"
    )
    if allow_override:
        (logger or log).warning("Extended character check overridden: %s", msg)
        return
    raise EncodingUnsupported(msg)
