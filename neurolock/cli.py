#!/usr/bin/env python3
"""
Command-line interface for NeuroLock.

Commands:
- enroll: Record trials and store a new template
- auth: Authenticate a user against their template
- delete: Delete a user's template
- list: List enrolled users
- inspect: Show template metadata
- selftest: Exercise capture, extraction, hashing and matching

Exit codes: 0 success, 1 access denied or cancelled, 2 error.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from neurolock import __version__
from neurolock.auth import SCORE_UNAVAILABLE
from neurolock.capture import CaptureSession, SimulatedHeadset
from neurolock.config import TASK_INSTRUCTIONS, MentalTask, NeuroLockConfig
from neurolock.errors import AlreadyExists, NeuroLockError, NotFound
from neurolock.extraction import extract_features
from neurolock.hashing import digest, generate_salt, get_algorithm
from neurolock.pipeline import authenticate_user, enroll_user
from neurolock.similarity import similarity
from neurolock.store import TemplateStore, read_record

EXIT_OK = 0
EXIT_DENIED = 1
EXIT_ERROR = 2


# ============================================================================
# Helpers
# ============================================================================

def parse_task(value: str) -> MentalTask:
    """Accept a task number (0-4) or name such as 'motor-imagery'."""
    try:
        return MentalTask(int(value))
    except ValueError:
        pass
    key = value.strip().upper().replace("-", "_")
    try:
        return MentalTask[key]
    except KeyError:
        names = ", ".join(t.name.lower().replace("_", "-") for t in MentalTask)
        raise argparse.ArgumentTypeError(f"unknown task '{value}' (choose from {names})")


def build_config(args) -> NeuroLockConfig:
    """Environment configuration with command-line overrides applied."""
    return NeuroLockConfig.from_env().with_overrides(
        template_dir=Path(args.templates_dir) if getattr(args, "templates_dir", None) else None,
        threshold=getattr(args, "threshold", None),
        enrolment_trials=getattr(args, "trials", None),
        max_auth_attempts=getattr(args, "attempts", None),
    )


def open_session(args, config: NeuroLockConfig) -> CaptureSession:
    subject = getattr(args, "subject", None) or args.user
    source = SimulatedHeadset(subject=subject, seed=getattr(args, "seed", None))
    return CaptureSession(device_name=args.device, source=source, config=config)


def show_instructions(task: MentalTask):
    def callback(number: int, total: int):
        print(f"=== Trial {number}/{total}: {TASK_INSTRUCTIONS[task]}")
    return callback


# ============================================================================
# Commands
# ============================================================================

def cmd_enroll(args) -> int:
    """Enroll a user with a new template."""
    try:
        config = build_config(args)
        store = TemplateStore(config=config)
        with open_session(args, config) as session:
            summary = enroll_user(args.user, session, store, config, task=args.task,
                                  on_trial=show_instructions(args.task))
    except AlreadyExists as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR
    except NeuroLockError as e:
        print(f"Error: enrolment failed: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Enrolled user '{args.user}' ({summary['task']}, {summary['dimension']} features)")
    print(f"Template saved to: {summary['path']}")
    return EXIT_OK


def cmd_auth(args) -> int:
    """Authenticate a user against their stored template."""
    try:
        config = build_config(args)
        store = TemplateStore(config=config)
        with open_session(args, config) as session:
            result = authenticate_user(args.user, session, store, config)
    except NotFound as e:
        print(f"Error: {e}. Enroll first with: neurolock enroll --user {args.user}",
              file=sys.stderr)
        return EXIT_ERROR
    except NeuroLockError as e:
        print(f"Error: could not evaluate authentication: {e}", file=sys.stderr)
        print(f"  Score: {SCORE_UNAVAILABLE:.1f}", file=sys.stderr)
        return EXIT_ERROR

    verdict = "AUTHENTICATED" if result.authenticated else "ACCESS DENIED"
    print("Authentication Result:")
    print(f"  User: {args.user}")
    print(f"  Score: {result.similarity_score:.4f}")
    print(f"  Threshold: {result.threshold:.4f}")
    print(f"  Attempts: {result.attempts}")
    print(f"  Verdict: {verdict}")
    return EXIT_OK if result.authenticated else EXIT_DENIED


def cmd_delete(args) -> int:
    """Delete a user's template after confirmation."""
    try:
        store = TemplateStore(config=build_config(args))
        if not store.exists(args.user):
            print(f"Error: User '{args.user}' not enrolled.", file=sys.stderr)
            return EXIT_ERROR
        if not args.yes:
            answer = input(f"Delete template for '{args.user}'? (yes/no): ")
            if answer.strip().lower() != "yes":
                print("Deletion cancelled.")
                return EXIT_DENIED
        store.delete(args.user)
    except NeuroLockError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    print(f"Template deleted for user '{args.user}'")
    return EXIT_OK


def cmd_list(args) -> int:
    """List enrolled users."""
    store = TemplateStore(config=build_config(args))
    owners = store.list_owners()
    if not owners:
        print(f"No users enrolled in {store.directory}")
        return EXIT_OK
    for owner in owners:
        print(owner)
    return EXIT_OK


def cmd_inspect(args) -> int:
    """Inspect template metadata."""
    try:
        if args.template:
            template = read_record(Path(args.template))
        elif args.user:
            template = TemplateStore(config=build_config(args)).load(args.user)
        else:
            print("Error: provide --user or --template", file=sys.stderr)
            return EXIT_ERROR
    except NeuroLockError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    with template:
        info = template.describe()
    print("Template Information:")
    for key, value in info.items():
        print(f"  {key}: {value}")
    return EXIT_OK


def cmd_selftest(args) -> int:
    """Run a quick check of every stage."""
    config = build_config(args)
    failures = 0

    def check(label: str, fn):
        nonlocal failures
        try:
            fn()
            print(f"  [ok]   {label}")
        except NeuroLockError as e:
            failures += 1
            print(f"  [FAIL] {label}: {e}")

    state = {}

    def capture():
        source = SimulatedHeadset(subject="selftest", seed=0)
        with CaptureSession("selftest", source=source, config=config) as session:
            state["sample"] = session.record(task=MentalTask.EYES_CLOSED_REST)

    def extract():
        state["vector"] = extract_features(state["sample"])

    def salt_and_hash():
        salted = digest(state["vector"], generate_salt(config.salt_length),
                        get_algorithm(config.digest_algorithm))
        salted.wipe()

    def match():
        score = similarity(state["vector"], state["vector"])
        if score != 1.0:
            raise NeuroLockError(f"self-similarity is {score}")

    print("NeuroLock self-test")
    check("capture", capture)
    if "sample" in state:
        check("feature extraction", extract)
    if "vector" in state:
        check("salt generation and hashing", salt_and_hash)
        check("similarity", match)
        state["vector"].wipe()
    if "sample" in state:
        state["sample"].wipe()

    return EXIT_OK if failures == 0 and "vector" in state else EXIT_ERROR


# ============================================================================
# Main CLI
# ============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="neurolock",
        description="Brainwave template enrolment and authentication",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Common arguments
    store_group = argparse.ArgumentParser(add_help=False)
    store_group.add_argument('--templates-dir', type=str,
                             help='Directory for template storage (default: templates/ '
                                  'or NEUROLOCK_TEMPLATE_DIR)')

    device_group = argparse.ArgumentParser(add_help=False)
    device_group.add_argument('--device', type=str, default='default_eeg_device',
                              help='EEG device name')
    device_group.add_argument('--subject', type=str,
                              help='Simulated wearer (default: the user being processed)')
    device_group.add_argument('--seed', type=int, help='Seed for simulated recordings')

    # Enroll command
    enroll_parser = subparsers.add_parser('enroll', parents=[store_group, device_group],
                                          help='Enroll a user')
    enroll_parser.add_argument('--user', required=True, help='User ID')
    enroll_parser.add_argument('--task', type=parse_task, default=MentalTask.EYES_CLOSED_REST,
                               help='Mental task, number 0-4 or name (default: eyes-closed-rest)')
    enroll_parser.add_argument('--trials', type=int, help='Number of enrolment trials (default: 3)')

    # Auth command
    auth_parser = subparsers.add_parser('auth', aliases=['authenticate'],
                                        parents=[store_group, device_group],
                                        help='Authenticate a user')
    auth_parser.add_argument('--user', required=True, help='User ID to authenticate')
    auth_parser.add_argument('--threshold', type=float,
                             help='Similarity threshold (default: 0.85)')
    auth_parser.add_argument('--attempts', type=int, help='Maximum attempts (default: 3)')

    # Delete command
    delete_parser = subparsers.add_parser('delete', parents=[store_group],
                                          help='Delete a user template')
    delete_parser.add_argument('--user', required=True, help='User ID')
    delete_parser.add_argument('--yes', action='store_true', help='Do not ask for confirmation')

    # List command
    subparsers.add_parser('list', parents=[store_group], help='List enrolled users')

    # Inspect command
    inspect_parser = subparsers.add_parser('inspect', parents=[store_group],
                                           help='Inspect template')
    inspect_parser.add_argument('--user', type=str, help='User ID (loads from templates dir)')
    inspect_parser.add_argument('--template', type=str, help='Path to a template record file')

    # Selftest command
    subparsers.add_parser('selftest', help='Run system self-test')

    return parser


COMMANDS = {
    'enroll': cmd_enroll,
    'auth': cmd_auth,
    'authenticate': cmd_auth,
    'delete': cmd_delete,
    'list': cmd_list,
    'inspect': cmd_inspect,
    'selftest': cmd_selftest,
}


def main(argv: Optional[list] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return EXIT_DENIED

    try:
        return COMMANDS[args.command](args)
    except NeuroLockError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
