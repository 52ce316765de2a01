#!/usr/bin/env python3
# generate_golden_fields.py
"""
Fill the `expect` block of a golden YAML record from an actual run.
Usage: python generate_golden_fields.py path/to/golden.yaml
"""

import os
import sys

import yaml

from chain import IntcodeChain
from isa import IntcodeError
from loader import disassemble, parse
from processor import Intcode, run_program


def build_expect(doc):
    """Run the record's program (or chain) and return a fresh expect mapping."""
    memory = parse(str(doc["program"]))
    expect = {"code_hex": "\n".join(disassemble(memory))}

    chain_cfg = doc.get("chain")
    try:
        if chain_cfg:
            chain = IntcodeChain(
                (Intcode(memory).with_input(p) for p in chain_cfg["phases"]),
                feedback=chain_cfg.get("feedback", False),
            )
            for v in doc.get("inputs") or []:
                chain.input(v)
            chain.run()
            out = []
            v = chain.output()
            while v is not None:
                out.append(v)
                v = chain.output()
            expect["output"] = out
            expect["passes"] = chain.passes
            return expect

        engine = run_program(memory, doc.get("inputs") or [], doc.get("config"))
    except IntcodeError as e:
        expect["error"] = type(e).__name__
        return expect

    expect["status"] = engine.status.name
    expect["output"] = engine.outputs
    expect["ticks"] = engine.ticks
    expect["memory"] = dict(enumerate(engine.memory))
    return expect


def main(path):
    if not os.path.exists(path):
        print("File not found:", path)
        sys.exit(2)

    with open(path, "r", encoding="utf-8") as f:
        doc = yaml.safe_load(f)

    if not isinstance(doc, dict) or "program" not in doc:
        print("No 'program' found in YAML, nothing to run")
        sys.exit(2)

    # keep hand-written keys such as log_contains
    target = doc.setdefault("expect", {})
    target.update(build_expect(doc))

    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    print(f"Updated {path} with expect fields.")


if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: generate_golden_fields.py path/to/golden.yaml")
        sys.exit(1)
    main(sys.argv[1])
