"""Error taxonomy for cadence with Rust-style terminal display."""

from __future__ import annotations

import inspect
import linecache
import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Frames inside this directory belong to cadence itself and are skipped when
# looking for the user call site.
_CADENCE_PKG_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class ErrorCode(str, Enum):
    """Error codes for cadence errors.

    Organized by category:
    - E100-E199: Job definition errors
    - E200-E299: Job lookup errors
    - E300-E399: Configuration errors
    - E400-E499: Registry errors
    """

    # Job definition (E100-E199)
    JOB_EMPTY_NAME = 'E100'
    RECURRENCE_OUT_OF_RANGE = 'E101'
    RECURRENCE_MALFORMED = 'E102'
    JOB_DUPLICATE_ID = 'E103'

    # Job lookup (E200-E299)
    JOB_NOT_FOUND = 'E200'

    # Configuration (E300-E399)
    CONFIG_INVALID_SCHEDULER = 'E300'
    CONFIG_INVALID_DATABASE_URL = 'E301'
    CLI_INVALID_ARGS = 'E302'

    # Registry (E400-E499)
    ACTION_NOT_REGISTERED = 'E400'


class _Colors:
    RESET = '\033[0m'
    BOLD = '\033[1m'
    RED = '\033[91m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    DIM = '\033[2m'


class _NoColors:
    RESET = ''
    BOLD = ''
    RED = ''
    BLUE = ''
    CYAN = ''
    GREEN = ''
    DIM = ''


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def _should_use_colors() -> bool:
    """Determine if colors should be used in output."""
    if _env_flag('CADENCE_FORCE_COLOR'):
        return True
    # https://no-color.org/
    if os.environ.get('NO_COLOR') is not None:
        return False
    return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()


def _should_show_verbose() -> bool:
    return _env_flag('CADENCE_VERBOSE')


def _should_use_plain_errors() -> bool:
    return _env_flag('CADENCE_PLAIN_ERRORS')


@dataclass
class SourceLocation:
    """File and line an error points at."""

    file: str
    line: int

    @classmethod
    def from_frame(cls, frame: Any) -> SourceLocation:
        return cls(file=frame.f_code.co_filename, line=frame.f_lineno)

    def get_source_line(self) -> str | None:
        line = linecache.getline(self.file, self.line)
        return line.rstrip('\n') if line else None

    def format_short(self) -> str:
        return f'{self.file}:{self.line}'


@dataclass
class CadenceError(Exception):
    """Base exception for cadence errors.

    Carries an error code, the user call site, notes and help text, and
    renders them the way rustc renders diagnostics.
    """

    message: str
    code: ErrorCode | None = None
    location: SourceLocation | None = None
    notes: list[str] = field(default_factory=lambda: [])
    help_text: str | None = None

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.location is None:
            user_frame = _find_user_frame()
            if user_frame is not None:
                self.location = SourceLocation.from_frame(user_frame)

    def with_note(self, note: str) -> CadenceError:
        self.notes.append(note)
        return self

    def with_help(self, help_text: str) -> CadenceError:
        self.help_text = help_text
        return self

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        if use_colors is None:
            use_colors = _should_use_colors()
        c = _Colors if use_colors else _NoColors

        code_part = f'[{self.code.value}]' if self.code else ''
        lines: list[str] = ['', f'{c.BOLD}{c.RED}error{code_part}:{c.RESET} {self.message}']

        if self.location:
            lines.append(
                f'  {c.BLUE}-->{c.RESET} {c.CYAN}{self.location.format_short()}{c.RESET}'
            )
            source_line = self.location.get_source_line()
            if source_line:
                line_num = str(self.location.line)
                gutter = ' ' * len(line_num)
                stripped = source_line.lstrip()
                underline = ' ' * (len(source_line) - len(stripped)) + '^' * len(stripped)
                lines.append(f'   {c.BLUE}{gutter}|{c.RESET}')
                lines.append(f'   {c.BLUE}{line_num}|{c.RESET} {source_line}')
                lines.append(f'   {c.BLUE}{gutter}|{c.RESET} {c.RED}{underline}{c.RESET}')

        for note in self.notes:
            first, *rest = note.split('\n')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.BLUE}note{c.RESET}: {first}')
            lines.extend(f'          {extra}' for extra in rest)

        if self.help_text:
            lines.append('')
            lines.append(f'   {c.BLUE}={c.RESET} {c.BOLD}{c.GREEN}help{c.RESET}:')
            lines.extend(f'        {h}' for h in self.help_text.split('\n'))

        return '\n'.join(lines)

    def __str__(self) -> str:
        # Plain text so the message is safe for log files and storage.
        return self.format_rust_style(use_colors=False)


_original_excepthook = sys.excepthook


def _cadence_excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: Any,
) -> None:
    """Print CadenceError in Rust style, delegate everything else."""
    if _should_use_plain_errors() or not isinstance(exc_value, CadenceError):
        _original_excepthook(exc_type, exc_value, exc_tb)
        return

    print(exc_value.format_rust_style(), file=sys.stderr)
    if _should_show_verbose():
        c = _Colors if _should_use_colors() else _NoColors
        print(file=sys.stderr)
        print(f'{c.DIM}Full traceback (CADENCE_VERBOSE=1):{c.RESET}', file=sys.stderr)
        traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)


def install_error_handler() -> None:
    """Install the custom exception hook for Rust-style error display."""
    sys.excepthook = _cadence_excepthook


def uninstall_error_handler() -> None:
    """Restore the original exception hook."""
    sys.excepthook = _original_excepthook


# =============================================================================
# Specific Error Classes
# =============================================================================


@dataclass
class JobValidationError(CadenceError):
    """Raised when a job definition or recurrence rule is invalid."""

    pass


@dataclass
class JobNotFoundError(CadenceError, KeyError):
    """Raised when an operation references an unknown job id."""

    job_id: str = ''


@dataclass
class ConfigurationError(CadenceError):
    """Raised when app, scheduler or database configuration is invalid."""

    pass


@dataclass
class RegistryError(CadenceError):
    """Raised when an action registry operation fails."""

    pass


def job_not_found(job_id: str) -> JobNotFoundError:
    """Build the standard error for an unknown job id."""
    return JobNotFoundError(
        message=f"job '{job_id}' not found",
        code=ErrorCode.JOB_NOT_FOUND,
        notes=[f"requested job id: '{job_id}'"],
        help_text='list current jobs with list_jobs() to obtain a valid id',
        job_id=job_id,
    )


# =============================================================================
# Phase-Gated Error Collection
# =============================================================================


class ValidationReport:
    """Collects several CadenceError instances raised by one validation phase."""

    def __init__(self, phase_name: str) -> None:
        self.phase_name: str = phase_name
        self.errors: list[CadenceError] = []

    def add(self, error: CadenceError) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        if use_colors is None:
            use_colors = _should_use_colors()
        c = _Colors if use_colors else _NoColors

        parts = [error.format_rust_style(use_colors=use_colors) for error in self.errors]
        parts.append(
            f'\n{c.BOLD}{c.RED}error{c.RESET}: aborting due to {len(self.errors)} previous errors'
        )
        return '\n'.join(parts)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


@dataclass
class MultipleValidationErrors(CadenceError):
    """Wraps a ValidationReport holding two or more errors."""

    report: ValidationReport = field(default_factory=lambda: ValidationReport(''))

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f'aborting due to {len(self.report.errors)} previous errors'
        # Location lives on each collected error.
        Exception.__init__(self, self.message)

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        return self.report.format_rust_style(use_colors=use_colors)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


def raise_collected(report: ValidationReport) -> None:
    """Raise what a report collected.

    - 0 errors: returns normally
    - 1 error: raises that error unchanged
    - 2+ errors: raises MultipleValidationErrors wrapping the report
    """
    count = len(report.errors)
    if count == 0:
        return
    if count == 1:
        raise report.errors[0]
    raise MultipleValidationErrors(
        message=f'aborting due to {count} previous errors',
        report=report,
    )


def _find_user_frame() -> Any | None:
    """Return the first stack frame outside cadence and site-packages."""
    frame = inspect.currentframe()
    while frame is not None:
        filename = frame.f_code.co_filename
        if (
            not filename.startswith('<')
            and not filename.startswith(_CADENCE_PKG_DIR)
            and '/site-packages/' not in filename
        ):
            return frame
        frame = frame.f_back
    return None
