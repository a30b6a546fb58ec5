#!/usr/bin/env python3
"""
API Spec Grader Command Line
============================
``api-grader`` entry point. Every subcommand prints JSON.

    api-grader grade openapi.yaml [--profile REST] [--record] [--min-score 80]
    api-grader detect openapi.yaml
    api-grader fixes openapi.yaml [--preserve-formatting] [-o patches.json]
    api-grader apply openapi.yaml patches.json [--write] [--no-backup]
    api-grader profiles
    api-grader generate-id [--prefix inventory]
    api-grader history <api_id> [--limit 20]

Exit codes: 0 success, 1 grade below --min-score, 2 error.
"""

import sys
import json
import argparse
from pathlib import Path
from typing import List, Any, Optional

from config_logging import GraderError, ValidationError, get_logger, VERSION, APP_NAME
from api_id import generate_api_id, parse_api_id

logger = get_logger('cli')


def _print(payload: Any):
    print(json.dumps(payload, indent=2, default=str))


def _load_patch_file(path: str) -> List[Any]:
    """Patches from a list, a {patches: [...]} object, or a saved fixes response."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            payload = json.load(f)
    except OSError as e:
        raise ValidationError(f"Cannot read patch file: {e}", field='patches') from e
    except json.JSONDecodeError as e:
        raise ValidationError(f"Patch file is not valid JSON: {e}", field='patches') from e

    if isinstance(payload, dict):
        if 'patches' in payload:
            payload = payload['patches']
        elif 'fixes' in payload:
            payload = [fix['patch'] for fix in payload['fixes'] if isinstance(fix, dict) and 'patch' in fix]
    if not isinstance(payload, list):
        raise ValidationError("Patch file must hold a list of patches", field='patches')
    return payload


def cmd_grade(args) -> int:
    from core import GradingEngine

    result = GradingEngine().grade_file(args.file, profile_override=args.profile,
                                        record=True if args.record else None)
    if args.summary:
        print(result.summary)
    else:
        _print(result.to_dict())
    if args.min_score is not None and result.report.total < args.min_score:
        return 1
    return 0


def cmd_detect(args) -> int:
    from file_parsers import load_spec_file
    from profiles import detect_profile, get_profile_manager

    _, document, _ = load_spec_file(args.file)
    detection = detect_profile(document)
    selection = get_profile_manager().select_profile(detection, args.profile)
    _print({'detection': detection.to_dict(), 'selection': selection.to_dict()})
    return 0


def cmd_fixes(args) -> int:
    from core import GradingEngine
    from file_parsers import load_spec_file
    from fix_assistant_api import build_fix_response

    text, document, fmt = load_spec_file(args.file)
    result = GradingEngine(record_history=False).grade_text(
        text, profile_override=args.profile, source=args.file, fmt=fmt)
    response = build_fix_response(result.findings, text, document,
                                  preserve_formatting=args.preserve_formatting, fmt=fmt)
    if args.output:
        Path(args.output).write_text(json.dumps(response, indent=2), encoding='utf-8')
        logger.info("fixes written", output=args.output, fixes=len(response['fixes']))
    _print(response)
    return 0


def cmd_apply(args) -> int:
    from patching.applier import apply_patches

    patches = _load_patch_file(args.patches)
    result = apply_patches(args.file, patches, dry_run=not args.write, backup=not args.no_backup)
    _print(result.to_dict(include_content=args.show_content))
    return 0


def cmd_profiles(args) -> int:
    from profiles import get_profile_manager

    manager = get_profile_manager()
    _print({
        'default': manager.default_type,
        'profiles': [p.to_dict() for p in manager.list_profiles()],
    })
    return 0


def cmd_generate_id(args) -> int:
    api_id = generate_api_id(args.prefix)
    _print({'api_id': api_id, **parse_api_id(api_id)})
    return 0


def cmd_history(args) -> int:
    from scan_history import get_grade_history_db

    _print({
        'api_id': args.api_id,
        'runs': get_grade_history_db().get_history(args.api_id, limit=args.limit, since=args.since),
    })
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='api-grader', description=f'{APP_NAME} command line')
    parser.add_argument('--version', action='version', version=f'%(prog)s {VERSION}')
    sub = parser.add_subparsers(dest='command')

    p = sub.add_parser('grade', help='Grade a spec file')
    p.add_argument('file', help='OpenAPI document (JSON or YAML)')
    p.add_argument('--profile', help='Profile type to grade against, skipping detection')
    p.add_argument('--record', action='store_true', help='Store the run in grade history')
    p.add_argument('--summary', action='store_true', help='Print a text summary instead of JSON')
    p.add_argument('--min-score', type=int, help='Exit 1 when the total is below this')
    p.set_defaults(func=cmd_grade)

    p = sub.add_parser('detect', help='Detect the profile of a spec file')
    p.add_argument('file')
    p.add_argument('--profile', help='Show the selection as if this override were given')
    p.set_defaults(func=cmd_detect)

    p = sub.add_parser('fixes', help='Generate patches for a spec file')
    p.add_argument('file')
    p.add_argument('--profile')
    p.add_argument('--preserve-formatting', action='store_true',
                   help='Prefer textual diffs that keep comments and layout')
    p.add_argument('-o', '--output', help='Also write the response to this file')
    p.set_defaults(func=cmd_fixes)

    p = sub.add_parser('apply', help='Apply a patch file to a spec file (dry run by default)')
    p.add_argument('file')
    p.add_argument('patches', help='JSON patch list or a saved fixes response')
    p.add_argument('--write', action='store_true', help='Write the result to the file')
    p.add_argument('--no-backup', action='store_true', help='Skip the backup copy when writing')
    p.add_argument('--show-content', action='store_true', help='Include the patched text')
    p.set_defaults(func=cmd_apply)

    p = sub.add_parser('profiles', help='List registered profiles')
    p.set_defaults(func=cmd_profiles)

    p = sub.add_parser('generate-id', help='Generate an info.x-api-id value')
    p.add_argument('--prefix', default='api')
    p.set_defaults(func=cmd_generate_id)

    p = sub.add_parser('history', help='Show stored grading runs for an API')
    p.add_argument('api_id')
    p.add_argument('--limit', type=int, default=20)
    p.add_argument('--since', help='ISO timestamp lower bound')
    p.set_defaults(func=cmd_history)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, 'func', None):
        parser.print_help()
        return 2
    try:
        return args.func(args)
    except GraderError as e:
        print(json.dumps(e.to_dict(), indent=2, default=str), file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
