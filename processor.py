"""Processor (Datapath + ControlUnit) and CLI wrapper.

Runs E20 machine code: fetch, decode, execute and commit one 16-bit
instruction per cycle until the program jumps to itself, then prints the
final machine state. Optional debug logging traces every cycle and writes
a disassembly of the loaded image (out.hex) next to the log.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from config import ConfigError, load_config
from isa import (
    ADDR_MASK,
    MEM_SIZE,
    NUM_REGS,
    RA_REG,
    WORD_MASK,
    AddiInstr,
    AluFunc,
    AluInstr,
    DecodeError,
    Instruction,
    JalInstr,
    JeqInstr,
    JInstr,
    LwInstr,
    SltiInstr,
    SwInstr,
    decode_instr,
    extract_bits,
    mnemonic,
    sign_extend7,
)
from loader import LoadError, load_file

LOGFILE = "processor.log"


def init_logging(logfile: str = LOGFILE, debug: bool = False, console: bool = False) -> None:
    """Configure root logger to write to `logfile`.

    If debug=True set DEBUG level. If console=True also echo logs to stdout.
    """
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
        if isinstance(h, logging.FileHandler):
            h.close()
    lvl = logging.DEBUG if debug else logging.CRITICAL
    root.setLevel(lvl)

    if debug:
        file_fmt = "%(levelname)s %(name)s:%(filename)s:%(lineno)d %(message)s"
    else:
        file_fmt = "%(levelname)-5s %(message)s"

    # always create a FileHandler even when not debug to allow easier inspection if asked
    fh = logging.FileHandler(logfile, mode="w", encoding="utf-8")
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(file_fmt))
    root.addHandler(fh)

    if debug and console:
        ch = logging.StreamHandler(sys.stdout)
        ch.setLevel(lvl)
        ch.setFormatter(logging.Formatter("%(levelname)5s %(message)s"))
        root.addHandler(ch)


def disassemble(memory: Sequence[int], count: int) -> str:
    """Render the first `count` words as `addr - word - mnemonic` lines."""
    lines: list[str] = []
    for addr in range(min(count, len(memory))):
        word = memory[addr]
        try:
            text = mnemonic(decode_instr(word, addr))
        except DecodeError as e:
            text = f"<decode error: {e}>"
        lines.append(f"{addr} - {word:04X} - {text}")
    return "\n".join(lines)


def _write_out_hex(memory: Sequence[int], count: int, path: str) -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(disassemble(memory, count))
    except OSError as e:
        logging.debug("Failed to write %s: %s", path, e)


def _program_length(memory: Sequence[int]) -> int:
    """Index one past the last non-zero word."""
    for i in range(len(memory) - 1, -1, -1):
        if memory[i]:
            return i + 1
    return 0


class Datapath:
    """Datapath (memory + register file + PC) of the E20 machine."""

    memory: list[int]
    registers: list[int]
    PC: int
    halted: bool
    cycles: int
    lenient_log: bool

    def __init__(self, memory: Sequence[int] | None = None, lenient_log: bool = False) -> None:
        """Initialize a zeroed machine, optionally preloaded with `memory`."""
        self.memory = [0] * MEM_SIZE
        if memory is not None:
            if len(memory) > MEM_SIZE:
                err = f"Program too large for memory: {len(memory)} words"
                raise MemoryError(err)
            for i, w in enumerate(memory):
                self.memory[i] = int(w) & WORD_MASK
        self.registers = [0] * NUM_REGS
        self.PC = 0
        self.halted = False
        self.cycles = 0
        self.lenient_log = bool(lenient_log)

    def read_reg(self, index: int) -> int:
        return self.registers[index]

    def write_reg(self, index: int, value: int) -> None:
        """Write a register; writes to $0 are discarded."""
        if index == 0:
            return
        self.registers[index] = int(value) & WORD_MASK

    def read_mem(self, addr: int) -> int:
        return self.memory[addr & ADDR_MASK]

    def write_mem(self, addr: int, value: int) -> None:
        self.memory[addr & ADDR_MASK] = int(value) & WORD_MASK

    def fetch(self) -> int:
        return self.memory[self.PC % MEM_SIZE]


class ControlUnit:
    """Control unit implementing the FETCH-DECODE-EXEC-COMMIT loop for the Datapath."""

    dp: Datapath

    def __init__(self, dp: Datapath) -> None:
        """Create a ControlUnit bound to `dp`."""
        self.dp = dp

    def _log_step(self, pc: int, word: int, instr: Instruction, next_pc: int) -> None:
        # skip verbose per-cycle logs in lenient mode to reduce log size
        if self.dp.lenient_log:
            return
        left = f"CYCLE: {self.dp.cycles:6d} PC: {pc:5d} WORD: {word:04x} INSTR: {mnemonic(instr):<20} "
        regs = " ".join(f"${i}={v:5d}" for i, v in enumerate(self.dp.registers))
        right = f"NEXT_PC: {next_pc:5d} {regs}"
        logging.debug(left + right)

    def step(self) -> Instruction:
        """Run one cycle and return the decoded instruction.

        Raises DecodeError when the fetched word has no valid opcode.
        """
        dp = self.dp
        current_pc = dp.PC
        word = dp.fetch()
        instr = decode_instr(word, current_pc)

        next_pc = self.exec(instr, current_pc)

        # commit
        dp.registers[0] = 0
        dp.cycles += 1
        self._log_step(current_pc, word, instr, next_pc)
        dp.halted = (next_pc % MEM_SIZE) == current_pc
        dp.PC = next_pc
        return instr

    def run(self) -> int:
        """Execute until the machine halts; return the number of cycles run."""
        dp = self.dp
        while not dp.halted:
            self.step()
        logging.debug("HALT at pc=%d after %d cycles", dp.PC, dp.cycles)
        return dp.cycles

    def exec(self, instr: Instruction, current_pc: int) -> int:  # noqa: C901
        """Execute a decoded instruction and return the next PC."""
        dp = self.dp
        next_pc = (current_pc + 1) & WORD_MASK

        if isinstance(instr, AluInstr):
            a = dp.read_reg(instr.reg_a)
            b = dp.read_reg(instr.reg_b)
            func = instr.func
            if func == AluFunc.ADD:
                dp.write_reg(instr.reg_dst, a + b)
            elif func == AluFunc.SUB:
                dp.write_reg(instr.reg_dst, a - b)
            elif func == AluFunc.OR:
                dp.write_reg(instr.reg_dst, a | b)
            elif func == AluFunc.AND:
                dp.write_reg(instr.reg_dst, a & b)
            elif func == AluFunc.SLT:
                dp.write_reg(instr.reg_dst, 1 if a < b else 0)
            elif func == AluFunc.JR:
                next_pc = a & ADDR_MASK
            else:
                logging.debug("ALU: undefined func %s at pc=%d -> no-op", format(func, "04b"), current_pc)
            return next_pc
        if isinstance(instr, AddiInstr):
            dp.write_reg(instr.reg_dst, dp.read_reg(instr.reg_a) + sign_extend7(instr.imm))
            return next_pc
        if isinstance(instr, JInstr):
            return instr.imm
        if isinstance(instr, JalInstr):
            dp.write_reg(RA_REG, current_pc + 1)
            return instr.imm
        if isinstance(instr, LwInstr):
            addr = (dp.read_reg(instr.reg_a) + sign_extend7(instr.imm)) & ADDR_MASK
            dp.write_reg(instr.reg_dst, dp.read_mem(addr))
            return next_pc
        if isinstance(instr, SwInstr):
            addr = (dp.read_reg(instr.reg_a) + sign_extend7(instr.imm)) & ADDR_MASK
            dp.write_mem(addr, dp.read_reg(instr.reg_b))
            return next_pc
        if isinstance(instr, JeqInstr):
            if dp.read_reg(instr.reg_a) == dp.read_reg(instr.reg_b):
                next_pc = (current_pc + 1 + sign_extend7(instr.imm)) & WORD_MASK
            return next_pc
        if isinstance(instr, SltiInstr):
            lt = dp.read_reg(instr.reg_a) < sign_extend7(instr.imm)
            dp.write_reg(instr.reg_dst, 1 if lt else 0)
            return next_pc
        raise DecodeError(extract_bits(instr.word, 13, 15), current_pc)


def format_state(pc: int, registers: Sequence[int], memory: Sequence[int], mem_qty: int) -> str:
    """Format the final machine state the way the reference simulator prints it."""
    out: list[str] = ["Final state:\n", f"\tpc={pc:5d}\n"]
    for r in range(NUM_REGS):
        out.append(f"\t${r}={registers[r]:5d}\n")
    for i in range(mem_qty):
        out.append(f"{memory[i]:04x} ")
        if (i + 1) % 8 == 0:
            out.append("\n")
    out.append("\n")
    return "".join(out)


# ---------- Public API ----------
def run_program(memory: Sequence[int], config: dict[str, Any] | None = None) -> tuple[str, int, Datapath]:
    """Run a loaded memory image to halt and return (report, cycles, datapath)."""
    cfg = load_config(dict(config) if config is not None else None)
    mem_qty = cfg["mem_dump_cells"]

    dp = Datapath(memory, lenient_log=cfg["lenient_log"])
    cu = ControlUnit(dp)
    cycles = cu.run()
    report = format_state(dp.PC, dp.registers, dp.memory, mem_qty)
    return report, cycles, dp


# ---------- CLI ----------
class UsageError(Exception):
    """Raised for bad command-line arguments."""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> Any:
        raise UsageError(message)


def usage(prog: str) -> str:
    return (
        f"Usage: {prog} [-h] [--config FILE] [--debug] [--console] [--logfile FILE] <machine_code_file.bin>\n"
        "Simulates the execution of E20 machine code.\n"
        "Options:\n"
        "  -h, --help        Show this help message and exit.\n"
        "  --config FILE     YAML config (mem_dump_cells, logfile, debug, console, lenient_log).\n"
        "  --debug           Trace every cycle to the log file and write out.hex.\n"
        "  --console         Also echo the log to stdout (only with --debug).\n"
        "  --logfile FILE    Path to the processor log.\n"
    )


def _build_parser(prog: str) -> _ArgumentParser:
    ap = _ArgumentParser(prog=prog, add_help=False, allow_abbrev=False)
    ap.add_argument("program", nargs="?", default=None)
    ap.add_argument("-h", "--help", action="store_true")
    ap.add_argument("--config", default=None)
    ap.add_argument("--debug", action="store_true", default=None)
    ap.add_argument("--console", action="store_true", default=None)
    ap.add_argument("--logfile", default=None)
    return ap


def main(argv: Sequence[str] | None = None) -> int:
    """Command-line entry point; returns the process exit code."""
    prog = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else "processor.py"
    args_in = list(sys.argv[1:] if argv is None else argv)

    try:
        args = _build_parser(prog).parse_args(args_in)
    except UsageError:
        sys.stderr.write(usage(prog))
        return 1
    if args.help or args.program is None:
        sys.stderr.write(usage(prog))
        return 1

    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        sys.stderr.write(f"Bad config: {e}\n")
        return 1
    # CLI flags override config values
    if args.debug is not None:
        cfg["debug"] = True
    if args.console is not None:
        cfg["console"] = True
    if args.logfile is not None:
        cfg["logfile"] = args.logfile

    try:
        init_logging(logfile=cfg["logfile"], debug=cfg["debug"], console=cfg["console"])
    except OSError:
        sys.stderr.write(f"Error: Cannot open log file {cfg['logfile']}\n")
        return 1

    if not Path(args.program).is_file():
        sys.stderr.write(f"Error: Cannot open file {args.program}\n")
        return 1
    try:
        memory = load_file(args.program)
    except OSError:
        sys.stderr.write(f"Error: Cannot open file {args.program}\n")
        return 1
    except LoadError as e:
        sys.stderr.write(f"{e}\n")
        return 1

    if cfg["debug"]:
        out_hex = str(Path(cfg["logfile"]).with_name("out.hex"))
        _write_out_hex(memory, _program_length(memory), out_hex)

    try:
        report, cycles, _dp = run_program(memory, cfg)
    except DecodeError as e:
        logging.debug("Decode error: %s", e)
        sys.stderr.write(f"{e}\n")
        return 1

    logging.debug("Program finished after %d cycles", cycles)
    sys.stdout.write(report)
    return 0


if __name__ == "__main__":
    sys.exit(main())
