"""System prompts and message templates for planning, execution and diagnosis."""

from typing import Optional


PLANNING_SYSTEM_PROMPT = """You are an experienced software architect and consultant. Your job is to ANALYZE
the request and produce a detailed PLAN - do NOT implement anything yet.

For every request provide:

1. **ANALYSIS** - What exactly is being asked for? Identify the core functionality.
2. **TECHNOLOGY RECOMMENDATIONS** - For each component: the recommended technology and
   why, estimated cost where relevant, and alternatives.
3. **ARCHITECTURE** - System overview, components and how they interact, data flow.
4. **IMPLEMENTATION STEPS** - A numbered list of concrete steps.
5. **RISKS & NOTES** - Likely problems, important considerations, security aspects.
6. **ESTIMATED EFFORT** - Rough complexity (simple / medium / complex).

Produce ONLY the plan. Do not implement anything."""


EXECUTION_SYSTEM_PROMPT = """You are an autonomous agent that carries out programming tasks on your own.

You have access to the following tools:
- read_file: read files
- write_file: create or overwrite files
- list_files: list a directory
- execute_bash: run allowlisted shell commands (npm, python, pytest, ...)
- git_command: run git commands (status, add, commit, push, ...)
- create_directory: create directories
- delete_file: delete files or directories
- search_files: find files by name pattern or content
- task_complete: mark the task as finished

RULES:
1. Work independently and completely; carry out every step that is needed.
2. When writing code, write complete, working files.
3. Install required dependencies with npm/pip.
4. Test your work when possible.
5. When you are done, call task_complete with a summary.
6. When something fails, analyze the error and fix it yourself.
7. Some commands are blocked by policy. When a command is refused, choose an allowed alternative
   instead of retrying it.

Working directory: {workspace}
All files are created and all commands run there. Paths are relative to it."""


DIAGNOSIS_SYSTEM_PROMPT = """You analyze why an autonomous coding agent failed. Reply with a single JSON object
and nothing else:

{"reason": "<one sentence: what went wrong>",
 "recommendation": "<one or two sentences: what the user should change or try next>",
 "canContinue": <true if the task can be resumed with an adjustment, false otherwise>}"""


GENERIC_RECOMMENDATION = (
    "An unexpected error occurred. Review the steps so far, adjust the goal or plan if needed, and try again."
)


def planning_message(goal: str) -> str:
    return (
        "Please analyze the following task and create a detailed plan with technology recommendations:\n\n"
        f"{goal}\n\n"
        "Provide a complete analysis with all recommendations, alternatives and implementation steps."
    )


def execution_message(goal: str) -> str:
    return (
        f"Task: {goal}\n\n"
        "Start working now. Use the available tools to complete the task fully."
    )


def continuation_message(
    goal: str,
    plan: Optional[str],
    error_reason: Optional[str],
    error_step: Optional[int],
    adjustment: Optional[str],
) -> str:
    """Message seeding a run that resumes a failed or stopped task."""
    return f"""{goal}

## Original plan
{plan or '(no plan recorded)'}

## What has happened so far
The task failed with the following error:
- Reason: {error_reason or 'Unknown'}
- At step: {error_step if error_step is not None else 'Unknown'}

## Adjustment from the user
{adjustment or 'Please try again with a different approach.'}

## Your task
Continue the work, taking the user's adjustment into account. Fix the problem and finish the task."""


def approved_plan_goal(goal: str, plan: Optional[str]) -> str:
    if not plan:
        return goal
    return f"{goal}\n\n## Approved plan\n{plan}"


def feedback_goal(goal: str, feedback: str) -> str:
    return f"{goal}\n\n## Feedback on the previous plan\n{feedback}"


def diagnosis_message(goal: str, error: str, last_step: Optional[str]) -> str:
    return (
        f"Goal:\n{goal}\n\n"
        f"Error that ended the run:\n{error}\n\n"
        f"Last step:\n{last_step or '(no steps were executed)'}"
    )
