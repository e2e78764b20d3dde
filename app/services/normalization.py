"""
Key canonicalization helpers

Decoration methods and stages arrive in several spellings (``screenPrinting``,
``screen-printing``, ``Screen Printing``). Every lookup keyed by method or
stage goes through these functions so that lane resolution, QC checkpoint
keys and batching rules all agree on one canonical form.
"""
import re
from typing import Any, Dict, Optional

_CAMEL_BOUNDARY = re.compile(r'([a-z0-9])([A-Z])')
_SEPARATORS = re.compile(r'[\s\-]+')


def normalize_key(value: Optional[str]) -> str:
    """Lowercase and collapse whitespace/hyphens to underscores."""
    if not value:
        return ''
    return _SEPARATORS.sub('_', str(value).strip().lower())


def normalize_method_id(value: Optional[str]) -> str:
    """
    Canonical decoration method id

    Splits camelCase boundaries before lowercasing so that
    ``screenPrinting`` and ``Screen Printing`` both map to ``screen_printing``.

    Args:
        value: Raw method name or id

    Returns:
        str: Snake-case method id ('' for empty input)
    """
    if not value:
        return ''
    text = _CAMEL_BOUNDARY.sub(r'\1_\2', str(value).strip())
    return _SEPARATORS.sub('_', text).lower()


def camel_method_id(value: Optional[str]) -> str:
    """Legacy camelCase alias used by stored settings (screen_printing -> screenPrinting)"""
    parts = [p for p in normalize_method_id(value).split('_') if p]
    if not parts:
        return ''
    return parts[0] + ''.join(p.capitalize() for p in parts[1:])


def to_title(value: Optional[str]) -> str:
    """Human label for an id: ``dtg_print`` -> ``Dtg Print``"""
    if not value:
        return ''
    words = re.sub(r'[_\-]+', ' ', str(value)).split()
    return ' '.join(w[:1].upper() + w[1:] for w in words)


def lookup_by_method(mapping: Optional[Dict[str, Any]], method: Optional[str], default=None):
    """
    Find the entry of ``mapping`` whose key names the same method

    Tries the exact key first, then any key that canonicalizes to the same
    method id.
    """
    if not mapping or not method:
        return default
    if method in mapping:
        return mapping[method]
    target = normalize_method_id(method)
    for key, value in mapping.items():
        if normalize_method_id(key) == target:
            return value
    return default


def qc_checkpoint_keys(method: Optional[str], stage: Optional[str]):
    """Keys tried, in order, when looking up a QC checkpoint for a method stage"""
    stage_id = normalize_key(stage)
    keys = []
    method_id = normalize_method_id(method)
    if method_id and stage_id:
        keys.append(f'{method_id}.{stage_id}')
        camel = camel_method_id(method_id)
        if camel != method_id:
            keys.append(f'{camel}.{stage_id}')
    if stage_id:
        keys.append(stage_id)
    return keys
