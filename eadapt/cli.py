"""
Command line entry point: ``eadapt <command>``.

Each command loads its inputs from the configured data directory, runs one
step of the analysis and prints tables to stdout. Progress goes to the log.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from .adherence import LEMP_TESTS, LempData
from .cleaning import EVENTS_CLEAN, LYMPHOMA_CLEAN, PATIENTS_CLEAN, clean_data
from .config import load_config, output_path, resolve_path, termset_path
from .errors import EadaptError
from .ltcs import Conditions
from .read2.code import ReadCode
from .read2.termset.termcodeset import CODES_FILE, TermCodeSet
from .read2.termset.termset import TermSet, User
from .read2.thesaurus import Thesaurus
from .records.adapt import Adapts
from .records.events import Events
from .records.patients import Patients
from .subtypes import CodeSubtypeMap

logger = logging.getLogger("eadapt")

EXACTLY_ONE_MODE = "please supply exactly one of --include, --code, --term-set"

SUBTYPE_MAP = "code_subtype_map.bin"
EVENTS_BIN = "events.bin"
PATIENTS_BIN = "patients.bin"
ADAPT_BIN = "adapt.bin"

ORIG_EVENTS = "full.records.csv"
ORIG_PATIENTS = "full.patients.txt"
ORIG_ADAPT = "full.adapt.csv"


def print_table(df: pd.DataFrame, title: Optional[str] = None) -> None:
    if title:
        print(f"\n{title}\n{'=' * len(title)}\n")
    if df.empty:
        print("(empty)")
    else:
        print(df.to_string(index=False))


# ------------------------------------------------------------------
# Term sets
# ------------------------------------------------------------------


def cmd_search_thesaurus(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    modes = [bool(args.include), args.code is not None, args.term_set_path is not None]
    if sum(modes) != 1:
        raise SystemExit(EXACTLY_ONE_MODE)

    th = Thesaurus.load(config=config)

    if args.code is not None:
        descriptions = th.get(args.code)
        if descriptions is None:
            print(f"Code {args.code} not found")
        else:
            print(f"Descriptions for code {args.code}")
            for desc in sorted(descriptions):
                print(f"  {desc}")
        return 0

    if args.term_set_path is not None:
        term_set = TermSet.load(args.term_set_path)
    else:
        user = None
        if args.name and args.email:
            user = User(args.name, args.email)
        term_set = TermSet(
            include_terms=args.include,
            exclude_terms=args.exclude,
            created_by=user,
        )
    matched = term_set.match_thesaurus(th)

    print_table(matched.table(), "Matches")
    print(f"\n{len(matched)} codes matched")

    unmatched = matched.descendants_not_included_or_excluded()
    print_table(unmatched.table(th), "Unmatched descendants")
    print(f"\n{len(unmatched)} unmatched descendants")

    if args.unmatched_first_words:
        for word in unmatched_first_words(unmatched, th):
            print(f"{json.dumps(word)},")
    if args.unmatched_descriptions:
        descriptions = sorted({d for code in unmatched for d in th.get(code) or ()})
        for desc in descriptions:
            print(f"{json.dumps(desc)},")

    if args.save is not None:
        matched.save_direct(args.save, args.overwrite)
    return 0


def unmatched_first_words(codes, th: Thesaurus) -> List[str]:
    """First word of the longest description of each code, lowercased and sorted."""
    words = set()
    for code in codes:
        descriptions = th.get(code)
        if not descriptions:
            continue
        longest = max(sorted(descriptions), key=len)
        first = longest.split(" ")[0].strip("*").lower()
        words.add(first)
    return sorted(words)


def cmd_regenerate_termset_codes(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    th = Thesaurus.load(config=config)
    root = resolve_path(config, "termsets_dir")
    wanted = Path(args.path) if args.path is not None else None
    for path in sorted(p for p in root.iterdir() if p.is_dir()):
        if wanted is not None:
            if path != wanted:
                continue
        elif not path.name.endswith("meds"):
            continue
        regenerate_codes(path, th)
    return 0


def regenerate_codes(path: Path, th: Thesaurus) -> None:
    term_set = TermSet.load(path)
    logger.info('Regenerating codes for termset "%s"', path.name)
    logger.info("  calculating codes")
    full_set = term_set.match_thesaurus(th)
    out_path = path / CODES_FILE
    logger.info('  writing codes to "%s"', out_path)
    full_set.code_set.save(out_path, overwrite=True)


# ------------------------------------------------------------------
# Imports
# ------------------------------------------------------------------


def cmd_import_thesaurus(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    read_db = resolve_path(config, "read_db_dir")
    th = Thesaurus.import_read_browser(read_db / "drugs.txt", read_db / "nondrugs.txt")
    th.save(resolve_path(config, "thesaurus_path"), overwrite=True)
    return 0


def cmd_import_subtypes(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    subtype_map = CodeSubtypeMap.from_excel(resolve_path(config, "subtype_workbook"))
    print_table(subtype_map.table(), "Code subtype mapping")
    subtype_map.save(output_path(SUBTYPE_MAP, config))
    return 0


def cmd_import_data(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    events = Events.load_orig(ORIG_EVENTS, config)
    events.save(EVENTS_BIN, config)

    subtype_map = CodeSubtypeMap.load(output_path(SUBTYPE_MAP, config))
    patients = Patients.load_orig(ORIG_PATIENTS, events, subtype_map, config)
    patients.save(PATIENTS_BIN, config)

    adapts = Adapts.load_orig(ORIG_ADAPT, config)
    adapts.save(ADAPT_BIN, config)
    return 0


# ------------------------------------------------------------------
# Analyses
# ------------------------------------------------------------------


def cmd_clean_data(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    patients = Patients.load(PATIENTS_BIN, config)
    events = Events.load(EVENTS_BIN, config)
    adapts = Adapts.load(ADAPT_BIN, config)
    th = Thesaurus.load(config=config)
    lymphoma = TermCodeSet.load("lymphoma", th, config)

    # Fail before writing anything if the clean term set cannot be saved
    if termset_path(LYMPHOMA_CLEAN, config).exists() and not args.overwrite:
        raise SystemExit(f'term set "{LYMPHOMA_CLEAN}" already exists, use --overwrite')

    result = clean_data(patients, events, th, lymphoma)
    print(json.dumps(result.summary(adapts), indent=2))
    result.save(args.overwrite, config)
    return 0


def cmd_long_term_conditions(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    patients = Patients.load(PATIENTS_CLEAN, config)
    events = Events.load(EVENTS_CLEAN, config)
    conditions = Conditions.load(config)
    th = Thesaurus.load(config=config)
    lymphoma = TermCodeSet.load(LYMPHOMA_CLEAN, th, config)

    diagnosis_dates = lymphoma.code_set.into_matcher().earliest_code(events)
    report = conditions.report(patients, events, diagnosis_dates, config=config)
    print_table(report.table(), "Long-term conditions")

    ltc = config["ltc"]
    significance = report.test_significance(ltc["error"], ltc["min_count"], ltc["bonferroni"])
    print_table(significance.table(), "Significance")
    return 0


def cmd_lemp_adherence(args: argparse.Namespace, config: Dict[str, Any]) -> int:
    patients = Patients.load(PATIENTS_CLEAN, config)
    events = Events.load(EVENTS_CLEAN, config)
    adapts = Adapts.load(ADAPT_BIN, config)

    lemp = LempData(patients, adapts, events, config)
    for test in LEMP_TESTS:
        print_table(lemp.stats_for(test).table(), test.title)
    return 0


# ------------------------------------------------------------------
# Parser
# ------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="eadapt", description="eADAPT needs analysis")
    parser.add_argument("--data-root", type=str, default=None, help="Study data directory")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search-thesaurus", help="Match terms against the Read thesaurus")
    p.add_argument("-i", "--include", action="append", default=[],
                   help="Include codes where a description matches this term")
    p.add_argument("-e", "--exclude", action="append", default=[],
                   help="Exclude codes where a description matches this term")
    p.add_argument("-t", "--term-set-path", type=Path, default=None,
                   help="A pre-existing term set to use")
    p.add_argument("-c", "--code", type=ReadCode.parse, default=None,
                   help="The Read code to look up")
    p.add_argument("-n", "--name", type=str, default=None)
    p.add_argument("--email", type=str, default=None)
    p.add_argument("--save", type=Path, default=None,
                   help="Save the term set and its codes to this directory")
    p.add_argument("--overwrite", action="store_true")
    p.add_argument("--unmatched-first-words", action="store_true",
                   help="Print the first word of each unmatched descendant's description")
    p.add_argument("--unmatched-descriptions", action="store_true",
                   help="Print the descriptions of unmatched descendants, sorted")
    p.set_defaults(func=cmd_search_thesaurus)

    p = sub.add_parser("regenerate-termset-codes", help="Rewrite codes.txt from meta.json")
    p.add_argument("path", nargs="?", default=None)
    p.set_defaults(func=cmd_regenerate_termset_codes)

    p = sub.add_parser("import-thesaurus", help="Build the thesaurus snapshot")
    p.set_defaults(func=cmd_import_thesaurus)

    p = sub.add_parser("import-subtypes", help="Import the code/subtype workbook")
    p.set_defaults(func=cmd_import_subtypes)

    p = sub.add_parser("import-data", help="Convert the original extract to binary tables")
    p.set_defaults(func=cmd_import_data)

    p = sub.add_parser("clean-data", help="Remove unreliable lymphoma patients")
    p.add_argument("-o", "--overwrite", action="store_true")
    p.set_defaults(func=cmd_clean_data)

    p = sub.add_parser("long-term-conditions", help="Prevalence of long-term conditions")
    p.set_defaults(func=cmd_long_term_conditions)

    p = sub.add_parser("lemp-adherence", help="Late effects monitoring adherence")
    p.set_defaults(func=cmd_lemp_adherence)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    overrides = {"data_root": args.data_root} if args.data_root else None
    config = load_config(overrides)

    try:
        return args.func(args, config)
    except (EadaptError, OSError, ValueError) as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
