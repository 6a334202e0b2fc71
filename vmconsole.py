#!/usr/bin/env python3
"""
Console front end for stackvm.

Enter a program line by line (finish with END), optionally save it, run it.
Or run a saved program file directly:

    stackvm prog.svm
    stackvm --save prog.svm
    stackvm --test
"""

import argparse
import sys

from stackvm import VM, load_program, run_tests, save_program

END_SENTINEL = 'END'
BANNER       = f"Enter instructions for the VM (type '{END_SENTINEL}' to finish):"


# ── Program entry ─────────────────────────────────────────────────────────────

def read_program(input_fn=None, print_fn=print) -> list:
    input_fn = input_fn or input
    print_fn(BANNER)
    program = []
    while True:
        try:
            line = input_fn().strip()
        except EOFError:
            break
        if line.upper() == END_SENTINEL:
            break
        program.append(line)
    return program


def offer_save(program: list, input_fn=None, print_fn=print) -> bool:
    """Ask whether to save the program. Returns True if it was written."""
    input_fn = input_fn or input
    try:
        answer = input_fn('Save program to file (yes/no)? ')
        if answer.strip().lower() != 'yes':
            return False
        filename = input_fn('Enter filename: ').strip()
    except EOFError:
        return False
    return _save(program, filename, print_fn)


def _save(program: list, filename: str, print_fn=print) -> bool:
    try:
        save_program(program, filename)
    except OSError as e:
        print(f'Error saving program: {e}', file=sys.stderr)
        return False
    print_fn(f'Program saved to {filename}')
    return True


# ── Main ──────────────────────────────────────────────────────────────────────

def main(argv: list | None = None) -> int:
    parser = argparse.ArgumentParser(prog='stackvm', description='Run a stackvm program.')
    parser.add_argument('file', nargs='?', default=None,
                        help='program file to run; omit to type one in')
    parser.add_argument('--save', metavar='PATH', default=None,
                        help='save the typed-in program to PATH without asking')
    parser.add_argument('--trace', action='store_true',
                        help='show pc, instruction and stack before each step')
    parser.add_argument('--test', action='store_true',
                        help='run the built-in self-tests and exit')
    args = parser.parse_args(argv)

    if args.test:
        p, t = run_tests()
        return 0 if p == t else 1

    if args.file is not None:
        try:
            program = load_program(args.file)
        except (OSError, UnicodeDecodeError) as e:
            print(f'Error loading program: {e}', file=sys.stderr)
            return 1
    else:
        try:
            program = read_program()
            if args.save is not None:
                _save(program, args.save)
            else:
                offer_save(program)
        except KeyboardInterrupt:
            print('\nInterrupted, nothing was run')
            return 130

    vm = VM(program, trace=args.trace, echo=print)
    try:
        vm.run()
    except KeyboardInterrupt:
        print(f'\nInterrupted at pc={vm.pc} after {vm.steps} steps')
        return 130
    return 0


if __name__ == '__main__':
    sys.exit(main())
