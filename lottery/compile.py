"""
compile.py - Contract Compilation

Reads the lottery contract source from disk and asks solc (through py-solc-x)
for its interface description (ABI) and bytecode. There is no logic here
beyond locating the contract in the compiler output.

Usage:
    from lottery.compile import compile_contract

    artifact = compile_contract()
    artifact.interface   # ABI: list of dicts
    artifact.bytecode    # hex string

    # Write build/Lottery.json
    python -m lottery.compile build
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
import hashlib
import json
import sys

import solcx

from .core import CompilationError


SOLC_VERSION = "0.4.17"
CONTRACTS_DIR = Path(__file__).resolve().parent / "contracts"
LOTTERY_SOURCE = CONTRACTS_DIR / "lottery.sol"
LOTTERY_CONTRACT = "Lottery"


@dataclass(frozen=True)
class CompiledContract:
    """Compiler output for one contract."""
    name: str
    interface: List[Dict[str, Any]]
    bytecode: str
    source_sha256: str = ""

    def to_json(self) -> str:
        return json.dumps({
            'contract': self.name,
            'solc_version': SOLC_VERSION,
            'source_sha256': self.source_sha256,
            'abi': self.interface,
            'bytecode': self.bytecode,
        }, indent=2)


def read_source(path: Path = LOTTERY_SOURCE) -> str:
    """Read contract source as UTF-8. The file is read as text, never imported."""
    return Path(path).read_text(encoding="utf-8")


def ensure_solc(version: str = SOLC_VERSION) -> None:
    """Install solc if missing and make it the active version."""
    installed = {str(v) for v in solcx.get_installed_solc_versions()}
    if version not in installed:
        solcx.install_solc(version)
    solcx.set_solc_version(version)


def compile_contract(
    path: Path = LOTTERY_SOURCE,
    contract_name: str = LOTTERY_CONTRACT,
    solc_version: str = SOLC_VERSION,
    install: bool = True,
) -> CompiledContract:
    """
    Compile one contract from a source file.

    Args:
        path: Solidity source file
        contract_name: Contract to pick from the compiler output
        solc_version: Compiler version passed to solc
        install: Install the compiler version first if it is missing

    Raises:
        CompilationError: The compiler output has no contract by that name.
    """
    source = read_source(path)
    if install:
        ensure_solc(solc_version)
    compiled = solcx.compile_source(
        source,
        output_values=["abi", "bin"],
        solc_version=solc_version,
    )

    # Keys are "<stdin>:Name"; older solc releases emit ":Name".
    for key, contract_data in compiled.items():
        if key.rsplit(":", 1)[-1] == contract_name:
            return CompiledContract(
                name=contract_name,
                interface=contract_data["abi"],
                bytecode=contract_data["bin"],
                source_sha256=hashlib.sha256(source.encode("utf-8")).hexdigest(),
            )
    raise CompilationError(
        f"Contract {contract_name} not found in compiler output for {path} "
        f"(found: {sorted(compiled)})"
    )


def interface_methods(interface: List[Dict[str, Any]]) -> Set[str]:
    """Names of the functions an ABI declares."""
    return {
        entry["name"]
        for entry in interface
        if entry.get("type", "function") == "function" and "name" in entry
    }


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    out_dir = Path(argv[0]) if argv else Path("build")
    out_dir.mkdir(parents=True, exist_ok=True)

    artifact = compile_contract()
    out_path = out_dir / f"{artifact.name}.json"
    out_path.write_text(artifact.to_json(), encoding="utf-8")
    print(f"✓ Compiled {artifact.name}: {len(artifact.bytecode) // 2} bytes, "
          f"{len(interface_methods(artifact.interface))} functions")
    print(f"  Wrote {out_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
