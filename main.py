#!/usr/bin/env python3
"""
MarketPollen - Interactive Menu Launcher
Run this file to reach the outreach commands through a simple menu.

Usage:
    python main.py
"""

import subprocess
import sys
import os

PYTHON = sys.executable
CLI = [PYTHON, "-m", "marketpollen.cli.main"]

# Project root on PYTHONPATH so 'marketpollen' is importable
ENV = os.environ.copy()
ENV["PYTHONPATH"] = os.path.dirname(os.path.abspath(__file__))


def run(args: list[str]):
    """Run a CLI command and return to menu when done."""
    print()
    subprocess.run(CLI + args, env=ENV)
    print()
    input("  Press Enter to return to menu...")


def prompt(label: str, required: bool = True) -> str:
    """Prompt user for input. Returns empty string if optional and skipped."""
    while True:
        value = input(f"  {label}: ").strip()
        if value:
            return value
        if not required:
            return ""
        print("  (required - please enter a value)")


def prompt_optional(label: str) -> str:
    return prompt(f"{label} (optional, Enter to skip)", required=False)


def clear():
    os.system("cls" if os.name == "nt" else "clear")


# =============================================================================
# COMMAND HANDLERS
# =============================================================================

def stores_list():
    run(["stores", "list"])

def dayplan():
    sid = prompt("Store ID")
    args = ["dayplan", sid]
    d = prompt_optional("Date YYYY-MM-DD (default: today)")
    if d: args += ["--date", d]
    run(args)

def intake():
    store = prompt("Store name")
    business = prompt("Business name")
    path = prompt_optional("Notes file")
    args = ["intake", "--store", store, "--business", business]
    if path:
        args += ["--file", path]
    else:
        args.append(prompt("Call notes"))
    run(args)

def opportunities_list():
    sid = prompt("Store ID")
    args = ["opportunities", "list", sid]
    s = prompt_optional("Status (new/converted/dismissed)")
    if s: args += ["--status", s]
    run(args)

def opportunities_convert():
    oid = prompt("Opportunity ID")
    args = ["opportunities", "convert", oid]
    n = prompt_optional("Business name override")
    if n: args += ["--name", n]
    run(args)

def opportunities_dismiss():
    oid = prompt("Opportunity ID")
    run(["opportunities", "dismiss", oid])

def nearby():
    sid = prompt("Store ID")
    args = ["nearby", sid, "--address", prompt("Search address")]
    q = prompt_optional("Text query (e.g. dentist)")
    if q: args += ["--query", q]
    add = input("  Add all results as opportunities? (y/N): ").strip().lower()
    if add == "y": args += ["--add"]
    run(args)

def discover():
    q = prompt_optional("Text query (Enter for a nearby search)")
    args = ["discover"]
    if q:
        args += ["--query", q]
    else:
        args += ["--lat", prompt("Latitude"), "--lng", prompt("Longitude")]
    r = prompt_optional("Radius in meters")
    if r: args += ["--radius", r]
    run(args)

def donations():
    sid = prompt("Store ID")
    run(["donations", sid])


# =============================================================================
# MENU LAYOUT
# =============================================================================

MENU = [
    ("TODAY", [
        ("Day plan",                     dayplan),
        ("Create contact from call",     intake),
    ]),
    ("OPPORTUNITIES", [
        ("List opportunities",           opportunities_list),
        ("Convert opportunity",          opportunities_convert),
        ("Dismiss opportunity",          opportunities_dismiss),
        ("Find nearby businesses",       nearby),
        ("Discovery search",             discover),
    ]),
    ("REPORTS", [
        ("Stores",                       stores_list),
        ("Donation progress",            donations),
    ]),
]


def print_menu():
    clear()
    print("=" * 50)
    print("   MARKETPOLLEN - OUTREACH")
    print("=" * 50)

    n = 1
    numbering = {}

    for section, commands in MENU:
        print(f"\n  {section}")
        print(f"  {'-' * len(section)}")
        for label, handler in commands:
            print(f"  {n:>2}.  {label}")
            numbering[n] = handler
            n += 1

    print("\n" + "=" * 50)
    print("   0.  Exit")
    print("=" * 50)
    return numbering


def main():
    while True:
        numbering = print_menu()

        try:
            choice = input("\n  Select a command: ").strip()
        except (KeyboardInterrupt, EOFError):
            print("\n\n  Goodbye!\n")
            break

        if choice == "0" or choice.lower() in ("q", "quit", "exit"):
            print("\n  Goodbye!\n")
            break

        try:
            n = int(choice)
            if n in numbering:
                clear()
                numbering[n]()
            else:
                print(f"\n  Invalid selection: {choice}")
                input("  Press Enter to continue...")
        except ValueError:
            print("\n  Please enter a number.")
            input("  Press Enter to continue...")


if __name__ == "__main__":
    main()
