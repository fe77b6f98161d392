"""Match uploaded or archived filenames to product codes.

The same assignment routine backs both the archive preview and batch
execution, so a preview always reports exactly the codes that will receive
an image.

Known ambiguity: the prefix rule lets a shorter code claim a longer code's
file (``FL-001`` matches ``FL-0010-XL.jpg``). Codes are tried in list order,
so put longer codes first when they share a prefix.
"""

import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar

from .exceptions import InputError
from .models import MAX_BATCH_CODES

_SEPARATORS = re.compile(r"[-_\s]+")
_CODE_LIST_SPLIT = re.compile(r"[\n\r\t,]+")

T = TypeVar("T")


def normalize(value: str) -> str:
    """Case-fold and drop ``-``, ``_`` and whitespace."""
    return _SEPARATORS.sub("", value.casefold())


def matches(code: str, candidate_basename: str) -> bool:
    """Return True if ``candidate_basename`` identifies ``code``.

    Rules are tried in order: exact, separator-insensitive, separator-insensitive
    prefix, and delimited occurrence anywhere in the name. All are
    case-insensitive.
    """
    code_folded = code.strip().casefold()
    name_folded = candidate_basename.strip().casefold()
    if not code_folded or not name_folded:
        return False

    if code_folded == name_folded:
        return True

    code_clean = normalize(code_folded)
    name_clean = normalize(name_folded)
    if code_clean and code_clean == name_clean:
        return True

    if code_clean and name_clean.startswith(code_clean):
        return True

    pattern = r"(?:^|[-_\s])" + re.escape(code_folded) + r"(?:$|[-_\s])"
    return re.search(pattern, name_folded) is not None


def find_matching_code(codes: Sequence[str], basename: str) -> Optional[str]:
    """First code in list order that ``basename`` identifies."""
    for code in codes:
        if matches(code, basename):
            return code
    return None


def assign_files(
    codes: Sequence[str], files: Iterable[Tuple[str, T]]
) -> List[Tuple[str, Optional[str], T]]:
    """Assign ``(basename, payload)`` pairs to codes.

    Returns ``(basename, code_or_None, payload)`` in input order. A file goes
    to its first matching code; a code keeps the first file that matched it,
    and later files matching an already-served code are left unassigned.
    """
    served = set()
    assignments: List[Tuple[str, Optional[str], T]] = []
    for basename, payload in files:
        code = find_matching_code(codes, basename)
        if code is not None and code in served:
            code = None
        if code is not None:
            served.add(code)
        assignments.append((basename, code, payload))
    return assignments


def build_code_map(
    codes: Sequence[str], files: Iterable[Tuple[str, T]]
) -> Dict[str, T]:
    """Code -> payload for every assigned file."""
    return {
        code: payload
        for _, code, payload in assign_files(codes, files)
        if code is not None
    }


def parse_code_list(text: str) -> List[str]:
    """Split pasted spreadsheet/notepad text into codes."""
    return [part.strip() for part in _CODE_LIST_SPLIT.split(text) if part.strip()]


def validate_codes(codes: Sequence[str]) -> List[str]:
    """Check the batch cap and deduplicate, preserving order.

    The cap applies to the submitted list, duplicates included, so a
    31-entry submission is rejected outright rather than trimmed.
    """
    cleaned = [code.strip() for code in codes if code and code.strip()]
    if not cleaned:
        raise InputError("At least one product code is required")
    if len(cleaned) > MAX_BATCH_CODES:
        raise InputError(
            f"Maximum {MAX_BATCH_CODES} product codes allowed per batch, got {len(cleaned)}"
        )
    return list(dict.fromkeys(cleaned))
