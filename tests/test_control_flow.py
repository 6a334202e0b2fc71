from __future__ import annotations

from stackvm import VM, run_program


def test_jmp_resumes_after_label_line():
    program = [
        "JMP LOOP",
        "PUSH 100",
        "LOOP: PUSH 1",
        "PRINT",
    ]
    # the label line is never executed, so PUSH 1 is discarded
    assert run_program(program) == ["Top of stack: Empty"]


def test_backward_jump_skips_label_line():
    program = [
        "PUSH 2",
        "TOP:",
        "PUSH 1",
        "SUB",
        "DUP",
        "PUSH 0",
        "CMPE",
        "CJMP OUT",
        "JMP TOP",
        "OUT:",
        "PRINT",
    ]
    vm = VM(program)
    assert vm.run() == ["Top of stack: 0"]


def test_jmp_sets_pc_to_label_then_increments():
    vm = VM(["JMP L", "PUSH 1", "L:", "PUSH 2"])
    vm.step()
    assert vm.pc == 3
    vm.run()
    assert vm.stack.items() == [2]


def test_unresolved_label_is_silent():
    vm = VM(["JMP MISSING", "PUSH 1", "PRINT"])
    assert vm.run() == ["Top of stack: 1"]


def test_cjmp_jumps_only_on_one():
    skip = ["CJMP S", "PUSH 7", "S:", "PRINT"]
    assert run_program(["PUSH 1", *skip]) == ["Top of stack: Empty"]
    for cond in ("0", "2", "-1"):
        assert run_program([f"PUSH {cond}", *skip]) == ["Top of stack: 7"]


def test_cjmp_pops_condition_even_when_not_taken():
    vm = VM(["PUSH 5", "PUSH 0", "CJMP X"])
    vm.run()
    assert vm.stack.items() == [5]


def test_duplicate_label_jumps_to_last_declaration():
    program = [
        "JMP L",
        "L:",
        "PUSH 1",
        "L:",
        "PUSH 2",
        "PRINT",
    ]
    vm = VM(program)
    assert vm.run() == ["Top of stack: 2"]
    assert vm.stack.items() == [2]


def test_countdown_loop():
    program = [
        "PUSH 3",
        "LOOP:",
        "PRINT",
        "PUSH 1",
        "SUB",
        "DUP",
        "PUSH 0",
        "CMPG",
        "CJMP LOOP",
    ]
    assert run_program(program) == [
        "Top of stack: 3",
        "Top of stack: 2",
        "Top of stack: 1",
    ]


def test_step_after_halt_returns_none():
    vm = VM(["PUSH 1"])
    assert vm.step().ok
    assert vm.halted
    assert vm.step() is None
    assert vm.steps == 1


def test_trace_shows_pc_instruction_and_stack():
    out = run_program(["PUSH 4", "DUP"], trace=True)
    assert out == ["[0] PUSH 4  <0>", "[1] DUP  <1> 4"]


def test_echo_receives_lines_as_emitted():
    seen: list[str] = []
    out = run_program(["PUSH 1", "PRINT", "BOGUS"], echo=seen.append)
    assert seen == out == ["Top of stack: 1", "Unknown instruction: BOGUS"]
