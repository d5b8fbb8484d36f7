#!/usr/bin/env python3
"""Sample contacts dataset generator.

Generates synthetic contact / company sheets (CSV or XLSX) with the Portuguese
headers operators usually export from their CRM, for manual runs of the
importer and for the perf smoke test.

Generated data deliberately mixes in:
- several contacts per company (organization de-duplication within a run)
- the same company spelled with different casing
- a share of rows with a broken CPF / email (warnings) and rows with no name (errors)
- phone cells holding two numbers
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np
import pandas as pd

HEADERS = [
    "Nome",
    "Email",
    "Telefone",
    "CPF",
    "Cargo",
    "Empresa",
    "CNPJ",
    "Cidade",
    "Estado",
    "Automotores",
]

_FIRST_NAMES = ["ana", "bruno", "carla", "diego", "eduarda", "felipe", "giovana", "heitor", "isabela", "joão"]
_LAST_NAMES = ["silva", "souza", "oliveira", "santos", "pereira", "lima", "costa", "ribeiro", "almeida", "gomes"]
_CITIES = [("São Paulo", "SP"), ("Curitiba", "PR"), ("Belo Horizonte", "MG"), ("Recife", "PE"), ("Porto Alegre", "RS")]
_JOB_TITLES = ["Gerente", "Diretor", "Comprador", "Analista", "Proprietário"]


def _check_digit(nums: list[int], weights: list[int]) -> int:
    remainder = sum(n * w for n, w in zip(nums, weights)) % 11
    return 0 if remainder < 2 else 11 - remainder


def make_cnpj(rng: np.random.Generator) -> str:
    base = [int(d) for d in rng.integers(0, 10, 8)] + [0, 0, 0, 1]
    d1 = _check_digit(base, [5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2])
    d2 = _check_digit(base + [d1], [6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2])
    digits = "".join(str(d) for d in base + [d1, d2])
    return f"{digits[:2]}.{digits[2:5]}.{digits[5:8]}/{digits[8:12]}-{digits[12:]}"


def make_cpf(rng: np.random.Generator) -> str:
    base = [int(d) for d in rng.integers(0, 10, 9)]
    d1 = _check_digit(base, list(range(10, 1, -1)))
    d2 = _check_digit(base + [d1], list(range(11, 1, -1)))
    digits = "".join(str(d) for d in base + [d1, d2])
    return f"{digits[:3]}.{digits[3:6]}.{digits[6:9]}-{digits[9:]}"


def _phone(rng: np.random.Generator) -> str:
    return f"(11) 9{rng.integers(1000, 9999)}-{rng.integers(1000, 9999)}"


def generate_contacts(
    rows: int,
    *,
    companies: int = 50,
    invalid_ratio: float = 0.05,
    seed: int = 42,
) -> pd.DataFrame:
    """Build a contacts DataFrame with ``HEADERS`` columns (all values as text).

    Args:
        rows: number of contact rows
        companies: size of the company pool contacts are drawn from
        invalid_ratio: share of rows given a broken CPF / email, and (half as
            many) rows with no name at all
        seed: random seed for reproducible data
    """
    rng = np.random.default_rng(seed)
    company_pool = []
    for i in range(max(1, companies)):
        city, uf = _CITIES[i % len(_CITIES)]
        company_pool.append(
            {
                "Empresa": f"Transportes {_LAST_NAMES[i % len(_LAST_NAMES)].title()} {i + 1}",
                "CNPJ": make_cnpj(rng),
                "Cidade": city,
                "Estado": uf,
                "Automotores": str(int(rng.integers(1, 200))),
            }
        )

    records: list[dict[str, str]] = []
    for j in range(rows):
        first = _FIRST_NAMES[int(rng.integers(0, len(_FIRST_NAMES)))]
        last = _LAST_NAMES[int(rng.integers(0, len(_LAST_NAMES)))]
        company = dict(company_pool[int(rng.integers(0, len(company_pool)))])
        if rng.random() < 0.1:
            # 同一企業の表記ゆれ
            company["Empresa"] = company["Empresa"].upper()
        phone = _phone(rng)
        if rng.random() < 0.2:
            phone = f"{phone} / {_phone(rng)}"
        records.append(
            {
                "Nome": f"{first} {last}",
                "Email": f"{first}.{last}.{j}@example.com.br",
                "Telefone": phone,
                "CPF": make_cpf(rng),
                "Cargo": _JOB_TITLES[int(rng.integers(0, len(_JOB_TITLES)))],
                **company,
            }
        )

    broken = rng.choice(rows, size=int(rows * invalid_ratio), replace=False) if rows else []
    for k, idx in enumerate(broken):
        if k % 3 == 0:
            records[idx]["Nome"] = ""
        elif k % 3 == 1:
            records[idx]["CPF"] = "123"
        else:
            records[idx]["Email"] = "sem-arroba"

    return pd.DataFrame(records, columns=HEADERS)


def write_dataset(df: pd.DataFrame, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if output_path.suffix.lower() == ".csv":
        df.to_csv(output_path, index=False, sep=";", encoding="utf-8")
    else:
        df.to_excel(output_path, index=False, engine="openpyxl")


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Generate a synthetic contacts spreadsheet for the bulk importer",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s data/contatos.xlsx
  %(prog)s data/contatos.csv --rows 2000 --companies 80 --invalid-ratio 0.1
        """,
    )
    parser.add_argument("output", type=Path, help="Output file (.csv or .xlsx)")
    parser.add_argument("--rows", type=int, default=500, help="Number of contact rows (default: 500)")
    parser.add_argument("--companies", type=int, default=50, help="Company pool size (default: 50)")
    parser.add_argument("--invalid-ratio", type=float, default=0.05, help="Share of broken rows (default: 0.05)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args()

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0 <= args.invalid_ratio <= 1:
        print("Error: --invalid-ratio must be within [0, 1]", file=sys.stderr)
        return 1
    if args.output.suffix.lower() not in (".csv", ".xlsx"):
        print("Error: output must end with .csv or .xlsx", file=sys.stderr)
        return 1

    df = generate_contacts(args.rows, companies=args.companies, invalid_ratio=args.invalid_ratio, seed=args.seed)
    try:
        write_dataset(df, args.output)
    except OSError as e:
        print(f"Error writing dataset: {e}", file=sys.stderr)
        return 1
    print(f"Created {args.output} rows={len(df)} companies<={args.companies}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
