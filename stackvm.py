#!/usr/bin/env python3
"""
stackvm.py — A small stack machine for teaching.

One program line per instruction. No bytecode. Just a list of text lines,
an operand stack, a label table and a program counter.

Architecture:
  - Label pass: scan the program once, map `name:` lines to their index
  - Fetch/decode: split the line at pc, decode the opcode into an Op
  - Execute: run one instruction, turn any fault into an Outcome
  - Report and continue: a faulting instruction never stops the run
  - pc is incremented after every instruction, jumps included, so a jump
    resumes on the line after its label

Instruction set:
  PUSH n        push integer literal n
  POP           drop top
  DUP           push copy of top
  SWAP          exchange top two
  ADD SUB MUL   b a -- b+a, b-a, b*a
  DIV MOD       b a -- b/a, b mod a    (truncating, a is the divisor)
  CMPE          b a -- 1 if a == b
  CMPG          b a -- 1 if a <  b
  CMPL          b a -- 1 if a >  b
  JMP label     pc = label index
  CJMP label    pop; jump if it was 1
  PRINT         report top without popping
  name:         label, rest of the line is ignored
"""

import re
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

WORD_BITS = 32
INT_MIN   = -(1 << (WORD_BITS - 1))
INT_MAX   = (1 << (WORD_BITS - 1)) - 1

_INT_RE = re.compile(r'[+-]?[0-9]+')


class Fault(Enum):
    UNDERFLOW         = 'underflow'
    MALFORMED_OPERAND = 'malformed operand'
    DIVISION_BY_ZERO  = 'division by zero'
    UNKNOWN_OPCODE    = 'unknown opcode'


class VMError(Exception):
    fault: Fault


class StackUnderflow(VMError):
    fault = Fault.UNDERFLOW

    def __init__(self, message='Stack underflow'):
        super().__init__(message)


class MalformedOperand(VMError):
    fault = Fault.MALFORMED_OPERAND


class DivisionByZero(VMError):
    fault = Fault.DIVISION_BY_ZERO


# ── Integers ──────────────────────────────────────────────────────────────────

def wrap(n: int) -> int:
    """Reduce n to a signed WORD_BITS integer (two's complement)."""
    n &= (1 << WORD_BITS) - 1
    if n > INT_MAX:
        n -= 1 << WORD_BITS
    return n


def parse_int(s: str) -> int:
    if not _INT_RE.fullmatch(s):
        raise MalformedOperand(f'Not an integer: {s!r}')
    digits = s.lstrip('+-').lstrip('0') or '0'
    if len(digits) > len(str(INT_MAX)):
        raise MalformedOperand(f'Integer out of range: {s}')
    n = -int(digits) if s.startswith('-') else int(digits)
    if not INT_MIN <= n <= INT_MAX:
        raise MalformedOperand(f'Integer out of range: {s}')
    return n


def trunc_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return -q if (a < 0) != (b < 0) else q


def trunc_mod(a: int, b: int) -> int:
    return a - b * trunc_div(a, b)


# ── Decoding ──────────────────────────────────────────────────────────────────

class Op(Enum):
    PUSH    = 'PUSH'
    POP     = 'POP'
    DUP     = 'DUP'
    SWAP    = 'SWAP'
    ADD     = 'ADD'
    SUB     = 'SUB'
    MUL     = 'MUL'
    DIV     = 'DIV'
    MOD     = 'MOD'
    CMPE    = 'CMPE'
    CMPG    = 'CMPG'
    CMPL    = 'CMPL'
    JMP     = 'JMP'
    CJMP    = 'CJMP'
    PRINT   = 'PRINT'
    LABEL   = ':'
    UNKNOWN = '?'


_OPCODES = {op.value: op for op in Op if op not in (Op.LABEL, Op.UNKNOWN)}


@dataclass(frozen=True)
class Instruction:
    op:       Op
    opcode:   str
    operands: tuple
    text:     str

    def operand(self, i: int = 0) -> str:
        if i >= len(self.operands):
            raise MalformedOperand(f'{self.opcode} needs an operand')
        return self.operands[i]


def tokenize(line: str) -> list:
    return line.split()


def decode(line: str) -> Instruction:
    tokens = tokenize(line)
    opcode = tokens[0] if tokens else ''
    if opcode.endswith(':'):
        op = Op.LABEL
    else:
        op = _OPCODES.get(opcode, Op.UNKNOWN)
    return Instruction(op, opcode, tuple(tokens[1:]), ' '.join(tokens))


def build_labels(program: list) -> dict:
    """Map each `name:` line to its index. A repeated name keeps the last."""
    labels = {}
    for i, line in enumerate(program):
        tokens = tokenize(line)
        if tokens and tokens[0].endswith(':'):
            labels[tokens[0][:-1]] = i
    return labels


# ── Operand stack ─────────────────────────────────────────────────────────────

class Stack:
    def __init__(self):
        self._items: list = []

    def push(self, v: int):
        self._items.append(v)

    def pop(self) -> int:
        if not self._items:
            raise StackUnderflow()
        return self._items.pop()

    def peek(self) -> int:
        if not self._items:
            raise StackUnderflow()
        return self._items[-1]

    def need(self, n: int):
        if len(self._items) < n:
            raise StackUnderflow()

    def size(self) -> int:
        return len(self._items)

    def items(self) -> list:
        return list(self._items)

    def __len__(self):
        return len(self._items)

    def render(self) -> str:
        return '<' + str(len(self._items)) + '> ' + ' '.join(str(x) for x in self._items)


# ── Outcomes ──────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Outcome:
    fault:   Fault | None = None
    message: str          = ''

    @property
    def ok(self) -> bool:
        return self.fault is None


OK = Outcome()


# ── Machine ───────────────────────────────────────────────────────────────────

class VM:
    def __init__(self, program, trace=False, echo=None):
        if program is None:
            raise TypeError('VM needs a program (list of lines)')
        self.program: list = list(program)
        self._labels: dict = build_labels(self.program)
        self.stack         = Stack()
        self.pc            = 0
        self.steps         = 0
        self.trace         = trace
        self.echo          = echo
        self.out:   list   = []

    @property
    def labels(self) -> dict:
        return dict(self._labels)

    @property
    def halted(self) -> bool:
        return self.pc >= len(self.program)

    # ── I/O ───────────────────────────────────────────────────────────────────

    def _emit(self, line: str):
        self.out.append(line)
        if self.echo is not None:
            self.echo(line)

    # ── Public ────────────────────────────────────────────────────────────────

    def run(self) -> list:
        """Run until pc leaves the program. Returns every emitted line."""
        while not self.halted:
            self.step()
        return self.out

    def step(self):
        if self.halted:
            return None
        instr = decode(self.program[self.pc])
        if self.trace:
            self._emit(f'[{self.pc}] {instr.text}  {self.stack.render()}'.rstrip())
        outcome = self.execute(instr)
        if not outcome.ok:
            self._emit(outcome.message)
        self.pc += 1
        self.steps += 1
        return outcome

    def execute(self, instr: Instruction) -> Outcome:
        try:
            return self._dispatch(instr)
        except VMError as e:
            return Outcome(e.fault, f'Error executing instruction {instr.text}: {e}')

    # ── Dispatch ──────────────────────────────────────────────────────────────

    def _jump(self, name: str):
        self.pc = self._labels.get(name, self.pc)

    def _dispatch(self, instr: Instruction) -> Outcome:
        s  = self.stack
        op = instr.op

        if op is Op.PUSH:
            s.push(parse_int(instr.operand()))

        elif op is Op.POP:
            s.pop()

        elif op is Op.DUP:
            s.push(s.peek())

        elif op is Op.SWAP:
            s.need(2)
            a = s.pop(); b = s.pop()
            s.push(a); s.push(b)

        elif op in (Op.ADD, Op.SUB, Op.MUL, Op.DIV, Op.MOD):
            s.need(2)
            a = s.pop(); b = s.pop()
            if   op is Op.ADD: s.push(wrap(b + a))
            elif op is Op.SUB: s.push(wrap(b - a))
            elif op is Op.MUL: s.push(wrap(b * a))
            elif op is Op.DIV:
                if a == 0: raise DivisionByZero('Division by zero')
                s.push(wrap(trunc_div(b, a)))
            else:
                if a == 0: raise DivisionByZero('Modulo by zero')
                s.push(trunc_mod(b, a))

        # CMPG/CMPL test a<b and a>b where a is the first pop
        elif op in (Op.CMPE, Op.CMPG, Op.CMPL):
            s.need(2)
            a = s.pop(); b = s.pop()
            res = {Op.CMPE: a == b, Op.CMPG: a < b, Op.CMPL: a > b}[op]
            s.push(1 if res else 0)

        elif op is Op.JMP:
            self._jump(instr.operand())

        elif op is Op.CJMP:
            if s.pop() == 1:
                self._jump(instr.operand())

        elif op is Op.PRINT:
            self._emit('Top of stack: ' + (str(s.peek()) if len(s) else 'Empty'))

        elif op is Op.LABEL:
            pass

        else:   # Op.UNKNOWN
            return Outcome(Fault.UNKNOWN_OPCODE, f'Unknown instruction: {instr.opcode}')

        return OK


def run_program(program, trace=False, echo=None) -> list:
    return VM(program, trace=trace, echo=echo).run()


# ── Program files ─────────────────────────────────────────────────────────────

def load_program(path) -> list:
    with open(Path(path), encoding='utf-8') as f:
        return [line[:-1] if line.endswith('\n') else line for line in f]


def save_program(lines, path):
    with open(Path(path), 'w', encoding='utf-8') as f:
        for line in lines:
            f.write(line + '\n')


# ── Tests ─────────────────────────────────────────────────────────────────────

def run_tests():
    cases = [
        # Arithmetic
        (['PUSH 3', 'PUSH 4', 'ADD', 'PRINT'],            ['Top of stack: 7']),
        (['PUSH 10', 'PUSH 3', 'SUB', 'PRINT'],           ['Top of stack: 7']),
        (['PUSH 6', 'PUSH 7', 'MUL', 'PRINT'],            ['Top of stack: 42']),
        (['PUSH 20', 'PUSH 6', 'DIV', 'PRINT'],           ['Top of stack: 3']),
        (['PUSH -7', 'PUSH 2', 'DIV', 'PRINT'],           ['Top of stack: -3']),
        (['PUSH 17', 'PUSH 5', 'MOD', 'PRINT'],           ['Top of stack: 2']),
        (['PUSH -7', 'PUSH 2', 'MOD', 'PRINT'],           ['Top of stack: -1']),
        (['PUSH 2147483647', 'PUSH 1', 'ADD', 'PRINT'],   ['Top of stack: -2147483648']),

        # Stack ops
        (['PUSH 3', 'DUP', 'ADD', 'PRINT'],               ['Top of stack: 6']),
        (['PUSH 1', 'PUSH 2', 'SWAP', 'PRINT'],           ['Top of stack: 1']),
        (['PUSH 1', 'PUSH 2', 'POP', 'PRINT'],            ['Top of stack: 1']),
        (['PRINT'],                                       ['Top of stack: Empty']),

        # Comparison (polarity as named by the instruction set, not by intuition)
        (['PUSH 4', 'PUSH 4', 'CMPE', 'PRINT'],           ['Top of stack: 1']),
        (['PUSH 4', 'PUSH 5', 'CMPE', 'PRINT'],           ['Top of stack: 0']),
        (['PUSH 1', 'PUSH 2', 'CMPG', 'PRINT'],           ['Top of stack: 0']),
        (['PUSH 2', 'PUSH 1', 'CMPG', 'PRINT'],           ['Top of stack: 1']),
        (['PUSH 1', 'PUSH 2', 'CMPL', 'PRINT'],           ['Top of stack: 1']),

        # Faults are reported, run continues
        (['POP', 'PUSH 1', 'PRINT'],
         ['Error executing instruction POP: Stack underflow', 'Top of stack: 1']),
        (['PUSH 5', 'PUSH 0', 'DIV', 'PRINT'],
         ['Error executing instruction DIV: Division by zero', 'Top of stack: Empty']),
        (['PUSH 5', 'PUSH 0', 'MOD', 'PRINT'],
         ['Error executing instruction MOD: Modulo by zero', 'Top of stack: Empty']),
        (['PUSH x'],
         ["Error executing instruction PUSH x: Not an integer: 'x'"]),
        (['HALT', 'PUSH 9', 'PRINT'],
         ['Unknown instruction: HALT', 'Top of stack: 9']),

        # Jumps resume after the label line
        (['JMP END', 'PUSH 1', 'PRINT', 'END:', 'PUSH 2', 'PRINT'],
         ['Top of stack: 2']),
        (['JMP NOWHERE', 'PUSH 1', 'PRINT'],              ['Top of stack: 1']),
        (['PUSH 0', 'CJMP SKIP', 'PUSH 1', 'PRINT', 'SKIP:'],
         ['Top of stack: 1']),
        (['SKIP: PUSH 99', 'PUSH 1', 'PRINT'],            ['Top of stack: 1']),

        # Countdown 3..1
        (['PUSH 3',
          'LOOP:',
          'PRINT',
          'PUSH 1',
          'SUB',
          'DUP',
          'PUSH 0',
          'CMPE',
          'CJMP DONE',
          'JMP LOOP',
          'DONE:'],
         ['Top of stack: 3', 'Top of stack: 2', 'Top of stack: 1']),
    ]

    passed = 0
    failures = []

    for program, expected in cases:
        got = VM(program).run()
        if got == expected:
            passed += 1
        else:
            failures.append((' / '.join(program)[:60], expected, got))

    print(f'Tests: {passed}/{len(cases)} passed')
    for src, exp, got in failures:
        print(f'  FAIL: {src}')
        print(f'    exp: {exp}')
        print(f'    got: {got}')
    return passed, len(cases)


if __name__ == '__main__':
    if '--test' in sys.argv:
        p, t = run_tests()
        sys.exit(0 if p == t else 1)
    from vmconsole import main
    sys.exit(main(sys.argv[1:]))
