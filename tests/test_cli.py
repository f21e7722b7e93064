import io

import pytest

import simpl


@pytest.fixture(autouse=True)
def quiet(monkeypatch):
    monkeypatch.setattr(simpl, "debug", False)


@pytest.fixture
def program(tmp_path):
    def write(source):
        path = tmp_path / "prog.simpl"
        path.write_text(source)
        return str(path)
    return write


def test_runs_file_with_input(program, capsys):
    path = program("read(a); read(b); write(a + b); write(a * b)")
    assert simpl.main([path, "-i", "3", "4"]) == 0
    assert capsys.readouterr().out == "7\n12\n"


def test_reads_program_from_stdin(monkeypatch, capsys):
    monkeypatch.setattr("sys.stdin", io.StringIO("write(10 % 4)"))
    assert simpl.main([]) == 0
    assert capsys.readouterr().out == "2\n"


def test_prints_ast(program, capsys):
    path = program("x := 1; write(x)")
    assert simpl.main([path, "--ast"]) == 0
    assert capsys.readouterr().out == 'Seq (Assign ("x", Const (1)), Write (Var ("x")))\n'


def test_syntax_error_exits_nonzero(program, capsys):
    path = program("write(1 < 2 < 3)")
    assert simpl.main([path]) == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Syntax error" in captured.err


def test_evaluation_error_exits_nonzero(program, capsys):
    path = program("read(a)")
    assert simpl.main([path]) == 1
    assert "input stream is empty" in capsys.readouterr().err


def test_missing_file(tmp_path, capsys):
    assert simpl.main([str(tmp_path / "nope.simpl")]) == 1
    assert "Failed to read" in capsys.readouterr().err


def test_debug_traces_to_stderr(program, capsys):
    path = program("x := 2; write(x)")
    assert simpl.main([path, "--debug"]) == 0
    captured = capsys.readouterr()
    assert captured.out == "2\n"
    assert "[simpl] parsed Seq (" in captured.err
    assert "output=[2]" in captured.err


def test_debug_flag_does_not_outlive_the_call(program, capsys):
    path = program("write(1)")
    assert simpl.main([path, "--debug"]) == 0
    assert simpl.debug is False
    capsys.readouterr()

    assert simpl.main([path]) == 0
    assert capsys.readouterr().err == ""


def test_long_expression_from_the_command_line(program, capsys):
    path = program("write(" + " * ".join(["1"] * 2000) + ")")
    assert simpl.main([path]) == 0
    assert capsys.readouterr().out == "1\n"
