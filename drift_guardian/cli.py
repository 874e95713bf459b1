"""
Terraform wrapper that reports each run to Drift Guardian.

Usage:
    drift-guardian [--drift-endpoint URL] [--drift-scheduled] [--terraform-version V] <terraform args...>

All arguments after the drift-guardian flags are passed to terraform unchanged
(`plan` additionally gets -detailed-exitcode). Repository, branch and
environment details come from the GitLab CI variables of the job.
"""

import argparse
import os
import subprocess
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .logging_utils import configure_logging, logger
from .models import EXIT_CHANGES_PRESENT, OPERATION_PLAN, REPORTED_OPERATIONS
from .webhook import send_report

MAX_PLAN_OUTPUT = 50000
TRUNCATION_NOTICE = "\n... [output truncated due to size]\n"


def _env_bool(key: str) -> bool:
    return (os.getenv(key) or "").strip().lower() in ("1", "t", "true", "yes")


def _ci_var(*names: str) -> str:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    logger.debug("ci_variable_missing", names=list(names), fallback="default")
    return "default"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drift-guardian",
        description="Run terraform and report the result to Drift Guardian.",
        allow_abbrev=False,
    )
    parser.add_argument("--terraform-version", "-terraform-version", default="",
                        help="Terraform version for tfenv (default: $TERRAFORM_VERSION)")
    parser.add_argument("--drift-endpoint", "-drift-endpoint", default="",
                        help="Drift Guardian base URL (default: $DRIFT_GUARDIAN_ENDPOINT)")
    parser.add_argument("--drift-scheduled", "-drift-scheduled", action="store_true",
                        help="Mark this run as scheduled (default: $SCHEDULED)")
    parser.add_argument("terraform_args", nargs=argparse.REMAINDER,
                        help="Arguments passed to terraform")
    return parser


def terraform_command(binary: str, tf_args: Sequence[str]) -> List[str]:
    args = list(tf_args)
    if args and args[0] == OPERATION_PLAN and "-detailed-exitcode" not in args[1:]:
        args.append("-detailed-exitcode")
    return [binary] + args


def run_terraform(cmd: List[str], capture: bool) -> Tuple[int, str]:
    """Run terraform, echoing its output; return (exit code, captured output)."""
    if not capture:
        return subprocess.run(cmd).returncode, ""

    captured: List[str] = []
    with subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True) as proc:
        if proc.stdout is not None:
            for line in proc.stdout:
                sys.stdout.write(line)
                captured.append(line)
    return proc.returncode, "".join(captured)


def truncate_plan_output(output: str, limit: int = MAX_PLAN_OUTPUT) -> str:
    if len(output) <= limit:
        return output
    return output[:limit] + TRUNCATION_NOTICE


def build_report(operation: str, exit_code: int, scheduled: bool, plan_output: str = "") -> Dict[str, Any]:
    report: Dict[str, Any] = {
        "repoName": _ci_var("CI_PROJECT_NAME", "CI_PROJECT_TITLE"),
        "branchName": _ci_var("CI_COMMIT_BRANCH"),
        "environment": _ci_var("CI_ENVIRONMENT_NAME"),
        "environmentTier": _ci_var("CI_ENVIRONMENT_TIER"),
        "driftThreshold": (os.getenv("DRIFT_THRESHOLD") or "").strip(),
        "projectId": _ci_var("CI_PROJECT_ID"),
        "operation": operation,
        "exitCode": exit_code,
        "scheduled": scheduled,
        "timestamp": datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z"),
    }
    if operation == OPERATION_PLAN and exit_code == EXIT_CHANGES_PRESENT and plan_output:
        report["planOutput"] = truncate_plan_output(plan_output)
    return report


def main(argv: Optional[Sequence[str]] = None) -> int:
    configure_logging("DEBUG" if _env_bool("GUARDIAN_DEBUG") else "WARN")
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.terraform_args:
        parser.print_usage(sys.stderr)
        return 1

    operation = args.terraform_args[0]
    endpoint = args.drift_endpoint or (os.getenv("DRIFT_GUARDIAN_ENDPOINT") or "").strip()
    scheduled = args.drift_scheduled or _env_bool("SCHEDULED")
    terraform_version = args.terraform_version or (os.getenv("TERRAFORM_VERSION") or "")
    os.environ["TFENV_TERRAFORM_VERSION"] = terraform_version

    cmd = terraform_command(os.getenv("TERRAFORM_BINARY") or "terraform", args.terraform_args)
    logger.debug("terraform_executing", command=" ".join(cmd), endpoint=endpoint, scheduled=scheduled)
    try:
        exit_code, output = run_terraform(cmd, capture=operation == OPERATION_PLAN)
    except OSError as e:
        print(f"Error executing terraform: {e}", file=sys.stderr)
        return 1
    logger.debug("terraform_exited", exit_code=exit_code)

    if endpoint and operation in REPORTED_OPERATIONS:
        send_report(endpoint, build_report(operation, exit_code, scheduled, output))

    # Terraform ran: its result is reported, not propagated.
    return 0


if __name__ == "__main__":
    sys.exit(main())
