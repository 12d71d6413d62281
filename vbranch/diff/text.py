"""Line-level helpers for the vbranch diff engine.

Contains:
- split_lines: Split text into lines keeping line endings
- line_opcodes: SequenceMatcher opcodes between two line lists
- change_blocks: Merged non-equal regions between two line lists
- similarity: Similarity ratio between two line lists
- map_offset: Map a boundary offset from one side of an alignment to the other
"""

from difflib import SequenceMatcher


Opcode = tuple[str, int, int, int, int]


def split_lines(text: str) -> list[str]:
    """Split text into lines, keeping line endings so joins are lossless."""
    return text.splitlines(keepends=True)


def line_opcodes(a: list[str], b: list[str]) -> list[Opcode]:
    """Return difflib opcodes turning ``a`` into ``b``.

    Junk heuristics are disabled so the result only depends on content.
    """
    return SequenceMatcher(None, a, b, autojunk=False).get_opcodes()


def change_blocks(a: list[str], b: list[str]) -> list[tuple[int, int, int, int]]:
    """Return the changed regions between two line lists.

    Adjacent non-equal opcodes are merged, so every block is bordered by
    unchanged lines (or a file edge) on both sides.

    Args:
        a: Old lines.
        b: New lines.

    Returns:
        List of (i1, i2, j1, j2) half-open ranges into ``a`` and ``b``.
    """
    blocks: list[tuple[int, int, int, int]] = []
    for tag, i1, i2, j1, j2 in line_opcodes(a, b):
        if tag == "equal":
            continue
        if blocks and blocks[-1][1] == i1 and blocks[-1][3] == j1:
            prev = blocks.pop()
            blocks.append((prev[0], i2, prev[2], j2))
        else:
            blocks.append((i1, i2, j1, j2))
    return blocks


def similarity(a: list[str], b: list[str]) -> float:
    """Similarity ratio in [0, 1] between two line lists."""
    if not a and not b:
        return 1.0
    matcher = SequenceMatcher(None, a, b, autojunk=False)
    # Cheap upper bounds first; ratio() is quadratic in the worst case
    if matcher.real_quick_ratio() == 0.0 or matcher.quick_ratio() == 0.0:
        return 0.0
    return matcher.ratio()


def map_offset(opcodes: list[Opcode], offset: int, a_len: int, b_len: int, from_b: bool = True) -> int:
    """Map a cut position on one side of an alignment to the other side.

    The mapping is monotonic, so cutting both sides at mapped positions
    yields pieces that reassemble into the original change.

    Args:
        opcodes: Alignment from line_opcodes(a, b).
        offset: Cut position (0..len) on the source side.
        a_len: Length of ``a``.
        b_len: Length of ``b``.
        from_b: True when ``offset`` is on the ``b`` side.

    Returns:
        The corresponding cut position on the other side.
    """
    src_len, dst_len = (b_len, a_len) if from_b else (a_len, b_len)
    if offset <= 0:
        return 0
    if offset >= src_len:
        return dst_len

    for tag, i1, i2, j1, j2 in opcodes:
        s1, s2, d1, d2 = (j1, j2, i1, i2) if from_b else (i1, i2, j1, j2)
        if not (s1 <= offset < s2):
            continue
        if offset == s1 or tag in ("insert", "delete"):
            return d1
        if tag == "equal":
            return d1 + (offset - s1)
        return d1 + min(offset - s1, d2 - d1)
    return dst_len
