#!/usr/bin/env python3
"""
Fill the expect block (out_stdout, out_code_hex, cycles, pc, registers) of a golden YAML record.
Usage: python generate_golden_fields.py path/to/golden.yaml
"""

import os
import sys

import yaml

from config import load_config
from loader import LoadError, load_machine_code
from processor import disassemble, run_program


def main(path):
    if not os.path.exists(path):
        print("File not found:", path)
        sys.exit(2)

    with open(path, "r", encoding="utf-8") as f:
        doc = yaml.safe_load(f) or {}

    src_code = doc.get("in_source")
    if not src_code:
        print("No 'in_source' found in YAML, nothing to run")
        sys.exit(2)

    lines = src_code.splitlines()
    # create expect section if none
    target = doc.setdefault("expect", {})

    try:
        memory = load_machine_code(lines)
    except LoadError as e:
        target.clear()
        target["error"] = str(e)
    else:
        report, cycles, dp = run_program(memory, load_config(doc.get("config")))
        target["cycles"] = cycles
        target["pc"] = dp.PC
        target["registers"] = list(dp.registers)
        target["out_code_hex"] = disassemble(memory, len(lines)) + "\n"
        # tabs are not stable in YAML block scalars; the golden runner strips lines
        target["out_stdout"] = "\n".join(line.strip() for line in report.strip().splitlines()) + "\n"

    # write back YAML (use block style where possible)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    print(f"Updated {path} expect block.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: generate_golden_fields.py path/to/golden.yaml")
        sys.exit(1)
    main(sys.argv[1])
