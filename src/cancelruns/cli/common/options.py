"""Common CLI options for the CLI.

Every option is also read from the environment, using the variables GitHub
Actions provides (GITHUB_*) and the INPUT_* variables it sets for action
inputs, so the same command works locally and as a workflow step.
"""

import typer

from cancelruns.core.auth import DEFAULT_API_URL
from cancelruns.core.cancel import DEFAULT_SERVER_URL
from cancelruns.core.policies import CancelMode

TokenOpt = typer.Option(
    None,
    "--token",
    envvar=["INPUT_TOKEN", "GITHUB_TOKEN"],
    help="GitHub token used for the REST API",
    show_default=False,
)

RepositoryOpt = typer.Option(
    None,
    "--repository",
    "-r",
    envvar="GITHUB_REPOSITORY",
    help="Repository as owner/name",
)

ApiUrlOpt = typer.Option(
    DEFAULT_API_URL,
    "--api-url",
    envvar="GITHUB_API_URL",
    help="GitHub REST API base URL",
)

ServerUrlOpt = typer.Option(
    DEFAULT_SERVER_URL,
    "--server-url",
    envvar="GITHUB_SERVER_URL",
    help="GitHub web URL, used for links to runs",
)

RunIdOpt = typer.Option(
    None,
    "--run-id",
    envvar="GITHUB_RUN_ID",
    help="Id of the invoking workflow run",
)

EventOpt = typer.Option(
    "",
    "--event",
    envvar="GITHUB_EVENT_NAME",
    help="Event that triggered the invoking run",
)

ModeOpt = typer.Option(
    CancelMode.DUPLICATES,
    "--mode",
    "-m",
    envvar="INPUT_CANCELMODE",
    help="Cancel mode",
)

SourceRunIdOpt = typer.Option(
    None,
    "--source-run-id",
    envvar="INPUT_SOURCERUNID",
    help="Run to evaluate against (defaults to the invoking run)",
)

JobNameOpt = typer.Option(
    [],
    "--job-name",
    "-j",
    help="Regex on job names (failedJobs / namedJobs / allDuplicates). This is reusable.",
    show_default=False,
)

JobNamesJsonOpt = typer.Option(
    None,
    "--job-names-json",
    envvar="INPUT_JOBNAMEREGEXPS",
    help='Job name regexes as a JSON array, e.g. \'["^Static checks$"]\'',
)

NotifyOpt = typer.Option(
    False,
    "--notify-pr-cancel/--no-notify-pr-cancel",
    envvar="INPUT_NOTIFYPRCANCEL",
    help="Comment on pull requests whose runs were cancelled",
)

MessageStartOpt = typer.Option(
    "",
    "--notify-pr-message-start",
    envvar="INPUT_NOTIFYPRMESSAGESTART",
    help="If set, comment this message on the source pull request first",
)

WorkflowOpt = typer.Option(
    None,
    "--workflow",
    "-w",
    envvar="INPUT_WORKFLOWFILENAME",
    help="Workflow file name or id to sweep (required for schedule sweeps)",
)

ConfirmOpt = typer.Option(
    False,
    "--confirm/--no-confirm",
    help="Ask for confirmation before cancelling runs",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show which runs would be cancelled, but don't cancel anything",
)
