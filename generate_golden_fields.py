#!/usr/bin/env python3
"""
Fill the `expect` section of a golden YAML record by running its program.
Writes outputs, final state, step count and a disassembly listing; if the
run faults, writes the fault name instead.
Usage: python generate_golden_fields.py path/to/golden.yaml
"""

import os
import sys

import yaml
from config import load_config
from isa import MachineFault, disassemble
from processor import make_machine


def build_listing(program):
    return "\n".join(f"{addr} - {text}" for addr, text in disassemble(program))


def run_record(doc):
    cfg = load_config(doc.get("config"))
    cfg["inputs"] = list(cfg["inputs"]) + list(doc.get("inputs") or [])
    cu = make_machine(doc["program"], cfg)
    outputs = []
    while True:
        outcome = cu.run()
        if not outcome.is_output:
            break
        outputs.append(outcome.value)
    return {
        "outputs": outputs,
        "state": cu.dp.state.value,
        "steps": cu.dp.steps,
    }


def main(path):
    if not os.path.exists(path):
        print("File not found:", path)
        sys.exit(2)

    with open(path, "r", encoding="utf-8") as f:
        doc = yaml.safe_load(f)

    if not isinstance(doc, dict) or not doc.get("program"):
        print("No 'program' found in YAML — nothing to run")
        sys.exit(2)

    target = doc.setdefault("expect", {})
    try:
        target.update(run_record(doc))
    except MachineFault as e:
        target["fault"] = type(e).__name__
    target["listing"] = build_listing(doc["program"])

    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=None, sort_keys=False, allow_unicode=True)

    print(f"Updated {path} with expected outputs, state and listing.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: generate_golden_fields.py path/to/golden.yaml")
        sys.exit(1)
    main(sys.argv[1])
