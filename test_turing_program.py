"""
Tests for program/tape loading, YAML conversion and the one-call runner.
"""

import pytest

from turing_machine import NoMatch, StopReason, Table
from turing_program import (BINARY_ADDER_YAML, format_tape, load_program, make_head, parse_tape,
                            parse_yaml_machine, read_program, run_turing_machine)


class TestTapes:
    def test_plain_text(self):
        assert parse_tape('ab') == (['a', 'b'], 0)

    def test_underscore_is_blank(self):
        assert parse_tape('a_b') == (['a', ' ', 'b'], 0)

    def test_head_marker(self):
        assert parse_tape('ab*cd') == (['a', 'b', 'c', 'd'], 2)

    def test_head_marker_at_end(self):
        assert parse_tape('ab*') == (['a', 'b', ' '], 2)

    def test_empty(self):
        assert parse_tape('') == ([' '], 0)
        assert parse_tape('*') == ([' '], 0)

    def test_make_head(self):
        head = make_head('x*yz')
        assert head.read() == 'y'
        assert str(head.tape) == 'xyz'

    def test_format_tape(self):
        assert format_tape(('', ' ', 'a', 'b', ' ')) == ' ab '
        assert format_tape((' ', 'a', ' ', 'b', ' '), strip=True) == 'a b'


class TestLoading:
    def test_read_program(self, tmp_path):
        path = tmp_path / 'swap.tm'
        path.write_text('; swap\n0 a b r 1\n1 b a r halt\n', encoding='utf-8')
        lines = read_program(path)
        assert lines == ['; swap', '0 a b r 1', '1 b a r halt']
        assert len(Table(lines)) == 2

    def test_load_text_program(self, tmp_path):
        path = tmp_path / 'swap.tm'
        path.write_text('0 a b r halt\n', encoding='utf-8')
        loaded = load_program(path)
        assert loaded == {'program': ['0 a b r halt'], 'input': None, 'start_state': None}

    def test_load_yaml_program(self, tmp_path):
        path = tmp_path / 'adder.yml'
        path.write_text(BINARY_ADDER_YAML, encoding='utf-8')
        loaded = load_program(path)
        assert loaded['start_state'] == 'right'
        assert loaded['input'] == '1011+11001'

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_program(tmp_path / 'nope.tm')


class TestYamlMachines:
    def test_conversion(self):
        parsed = parse_yaml_machine("""
input: 'ab'
blank: ' '
start state: scan
table:
  scan:
    [a,b]: R
    ' ': {write: x, L: done}
  done:
""")
        assert parsed['program'] == [
            'scan a * r scan',
            'scan b * r scan',
            'scan _ x l halt-done',
        ]
        assert parsed['start_state'] == 'scan'
        assert parsed['input'] == 'ab'

    def test_custom_blank(self):
        parsed = parse_yaml_machine("""
input: '0a0'
blank: '0'
table:
  s:
    0: {write: 0, R: halt}
    a: {R}
""")
        assert parsed['program'] == ['s _ _ r halt', 's a * r s']
        assert parsed['input'] == '_a_'
        assert parsed['start_state'] == 's'

    def test_missing_direction(self):
        with pytest.raises(ValueError):
            parse_yaml_machine("table:\n  s:\n    a: {write: b}\n")

    def test_multi_character_symbol(self):
        with pytest.raises(ValueError):
            parse_yaml_machine("table:\n  s:\n    ab: R\n")

    @pytest.mark.parametrize('name', ['go right', "';go'", "'*'"])
    def test_unusable_state_name(self, name):
        with pytest.raises(ValueError):
            parse_yaml_machine(f"table:\n  {name}:\n    a: R\n")

    def test_unusable_start_state(self):
        with pytest.raises(ValueError):
            parse_yaml_machine("start state: go right\ntable:\n  s:\n    a: R\n")

    def test_unusable_next_state(self):
        with pytest.raises(ValueError):
            parse_yaml_machine("table:\n  s:\n    a: {L: go left}\n")

    def test_same_keys_as_text_programs(self, tmp_path):
        path = tmp_path / 'adder.yaml'
        path.write_text(BINARY_ADDER_YAML, encoding='utf-8')
        assert set(load_program(path)) == {'program', 'input', 'start_state'}

    def test_binary_adder(self):
        """The adder turns '11+1' into '100 1' (3+1=4)."""
        parsed = parse_yaml_machine(BINARY_ADDER_YAML)
        result = run_turing_machine(parsed['program'], '11+1', parsed['start_state'], max_steps=10000)
        assert result.halted
        assert result.state == 'halt-done'
        assert format_tape(result.tape, strip=True) == '100 1'

    @pytest.mark.parametrize('a,b', [(107, 25), (0, 0), (1, 255), (200, 56)])
    def test_binary_adder_sums(self, a, b):
        parsed = parse_yaml_machine(BINARY_ADDER_YAML)
        result = run_turing_machine(parsed['program'], f'{a:b}+{b:b}', parsed['start_state'],
                                    max_steps=100000)
        assert result.halted
        total, second = format_tape(result.tape, strip=True).split()
        assert int(total, 2) == a + b
        assert int(second, 2) == b


class TestRunTuringMachine:
    def test_result(self):
        result = run_turing_machine(['0 a b r 1', '1 b a r halt'], 'ab')
        assert format_tape(result.tape, strip=True) == 'ba'
        assert result.steps == 2

    def test_verbose_output(self, capsys):
        run_turing_machine(['0 a b r 1', '1 b a r halt'], 'ab', verbose=True)
        out = capsys.readouterr().out
        assert 'Program has 2 transition rules' in out
        assert 'Step 2: State=halt' in out
        assert 'halted in state halt after 2 steps' in out

    def test_step_limit(self, capsys):
        result = run_turing_machine(['0 * * r *'], '', max_steps=3, verbose=True)
        assert result.reason is StopReason.LIMIT
        assert 'Reached maximum steps (3)' in capsys.readouterr().out

    def test_breakpoints_do_not_block(self):
        result = run_turing_machine(['0 a b r halt !'], 'a')
        assert result.halted

    def test_no_match(self):
        with pytest.raises(NoMatch):
            run_turing_machine(['0 a b r 1'], 'ab')

    def test_record(self):
        result = run_turing_machine(['0 a b r halt'], 'a', record=True)
        assert len(result.history) == 1
