"""Module: load E20 machine code text into a memory image.

Each line of a program file describes one word:

    ram[0] = 16'b0010000010000101;  // addi $1,$0,5

Addresses must start at 0 and grow by one per line.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from isa import MEM_SIZE, WORD_MASK

MACHINE_CODE_RE = re.compile(r"^ram\[(\d+)\] = 16'b(\d+);.*$", re.ASCII)


class LoadError(ValueError):
    """Raised when a program image is malformed."""

    pass


def load_machine_code(lines: Iterable[str], mem_size: int = MEM_SIZE) -> list[int]:
    """Parse machine code lines into a zero-filled memory image of `mem_size` words.

    Raises LoadError on a bad line, an address out of sequence or a program
    that does not fit into memory.
    """
    memory = [0] * mem_size
    expected_addr = 0
    for raw in lines:
        line = raw.rstrip("\r\n")
        m = MACHINE_CODE_RE.match(line)
        if m is None:
            msg = f"Invalid line format: {line}"
            raise LoadError(msg)

        addr = int(m.group(1))
        bits = m.group(2)
        if len(bits) > 16 or set(bits) - {"0", "1"}:
            msg = f"Invalid line format: {line}"
            raise LoadError(msg)
        instr = int(bits, 2)

        if addr != expected_addr:
            msg = f"Memory addresses out of sequence: {addr}"
            raise LoadError(msg)
        if addr >= mem_size:
            msg = f"Program too large for memory: {addr}"
            raise LoadError(msg)

        memory[addr] = instr
        expected_addr += 1

    logging.debug("Loader: %d words loaded", expected_addr)
    return memory


def load_file(path: str, mem_size: int = MEM_SIZE) -> list[int]:
    """Open `path` and load it with load_machine_code."""
    with open(path, encoding="utf-8") as f:
        return load_machine_code(f, mem_size)


def format_machine_code(words: Iterable[int], comments: Iterable[str] | None = None) -> str:
    """Render words back into `ram[i] = 16'b...;` lines.

    Optional `comments` are appended as `// text` after each word.
    """
    notes = list(comments) if comments is not None else []
    out: list[str] = []
    for i, w in enumerate(words):
        line = f"ram[{i}] = 16'b{w & WORD_MASK:016b};"
        if i < len(notes) and notes[i]:
            line += f"  // {notes[i]}"
        out.append(line)
    return "\n".join(out) + ("\n" if out else "")
