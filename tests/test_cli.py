"""
Tests for the api-grader command line.
"""

import json

import pytest

from cli import main, _load_patch_file
from config_logging import ValidationError


@pytest.fixture
def spec_file(tmp_path, saas_spec):
    path = tmp_path / 'console.yaml'
    path.write_text(saas_spec, encoding='utf-8')
    return path


def run(capsys, *argv):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured


class TestGradeCommand:

    def test_grade_prints_json(self, capsys, spec_file):
        code, captured = run(capsys, 'grade', str(spec_file))
        payload = json.loads(captured.out)
        assert code == 0
        assert payload['grade']['letter'] == 'F'
        assert payload['selection']['reason'] == 'detected'

    def test_min_score_gate(self, capsys, spec_file):
        code, _ = run(capsys, 'grade', str(spec_file), '--min-score', '96')
        assert code == 1

    def test_summary(self, capsys, spec_file):
        code, captured = run(capsys, 'grade', str(spec_file), '--summary')
        assert code == 0
        assert captured.out.startswith('Grade F (95/100)')

    def test_unknown_profile_exits_2(self, capsys, spec_file):
        code, captured = run(capsys, 'grade', str(spec_file), '--profile', 'Nope')
        assert code == 2
        assert 'VALIDATION_ERROR' in captured.err

    def test_record_then_history(self, capsys, spec_file):
        run(capsys, 'grade', str(spec_file), '--record')
        code, captured = run(capsys, 'history', 'console_1718035200000_0a1b2c3d4e5f6a7b')
        runs = json.loads(captured.out)['runs']
        assert code == 0
        assert len(runs) == 1
        assert runs[0]['total'] == 95


class TestFixAndApply:

    def test_fixes_then_apply(self, capsys, tmp_path, spec_file, saas_spec):
        out = tmp_path / 'fixes.json'
        code, _ = run(capsys, 'fixes', str(spec_file), '-o', str(out))
        assert code == 0
        assert json.loads(out.read_text())['fixes'][0]['rule_id'] == 'SEC-001'

        code, captured = run(capsys, 'apply', str(spec_file), str(out))
        result = json.loads(captured.out)
        assert code == 0
        assert result['dry_run'] is True
        assert result['applied'] == 1
        assert spec_file.read_text(encoding='utf-8') == saas_spec

        code, captured = run(capsys, 'apply', str(spec_file), str(out), '--write')
        assert code == 0
        assert json.loads(captured.out)['backup_path'].endswith('console.yaml.bak')
        assert 'parameters' in spec_file.read_text(encoding='utf-8')

        code, captured = run(capsys, 'grade', str(spec_file))
        assert json.loads(captured.out)['grade']['letter'] == 'A+'

    def test_stale_patch_file(self, capsys, tmp_path, spec_file):
        out = tmp_path / 'fixes.json'
        run(capsys, 'fixes', str(spec_file), '-o', str(out))
        spec_file.write_text(spec_file.read_text(encoding='utf-8') + '# edited\n', encoding='utf-8')

        code, captured = run(capsys, 'apply', str(spec_file), str(out), '--write')
        assert code == 2
        assert 'STALE_PRECONDITION' in captured.err


class TestLoadPatchFile:

    def test_accepts_wrapped_list(self, tmp_path):
        path = tmp_path / 'p.json'
        path.write_text(json.dumps({'patches': [{'kind': 'textual'}]}))
        assert _load_patch_file(str(path)) == [{'kind': 'textual'}]

    def test_rejects_scalar(self, tmp_path):
        path = tmp_path / 'p.json'
        path.write_text('42')
        with pytest.raises(ValidationError):
            _load_patch_file(str(path))


def test_profiles_listing(capsys):
    code, captured = run(capsys, 'profiles')
    payload = json.loads(captured.out)
    assert code == 0
    assert payload['default'] == 'Custom'
    assert {'SaaS', 'REST', 'Custom'} <= {p['type'] for p in payload['profiles']}


def test_generate_id(capsys):
    code, captured = run(capsys, 'generate-id', '--prefix', 'Inventory')
    payload = json.loads(captured.out)
    assert payload['prefix'] == 'inventory'
    assert payload['api_id'].startswith('inventory_')


def test_no_command_prints_help(capsys):
    assert main([]) == 2
