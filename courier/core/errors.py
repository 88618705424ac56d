"""Error types for courier.

Two families live here:

* Startup/validation errors (``CourierError`` and subclasses). These are raised
  while building configuration or parsing CLI arguments and are rendered in a
  compiler-like layout (code, location, notes, help) by the optional
  excepthook installed with ``install_error_handler()``.
* Runtime errors raised by the dispatch core (``ListenerDisconnectedError``,
  ``ContentNotFoundError``). These are plain exceptions.
"""

from __future__ import annotations

import linecache
import os
import sys
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Frames inside this directory are library frames, not user code.
_COURIER_PKG_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class ErrorCode(str, Enum):
    """Error codes for startup/validation errors.

    - E200-E299: configuration errors
    - E300-E399: CLI errors
    """

    BROKER_INVALID_URL = 'E200'
    CONFIG_INVALID_IDENTIFIER = 'E201'
    CONFIG_MISSING_SETTING = 'E202'
    CONFIG_INVALID_SETTING = 'E203'

    CLI_INVALID_ARGS = 'E300'


def _env_flag(name: str) -> bool:
    return os.environ.get(name, '').lower() in ('1', 'true', 'yes')


def _should_use_colors() -> bool:
    if _env_flag('COURIER_FORCE_COLOR'):
        return True
    # https://no-color.org/
    if os.environ.get('NO_COLOR') is not None:
        return False
    return hasattr(sys.stderr, 'isatty') and sys.stderr.isatty()


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


@dataclass
class SourceLocation:
    """A file/line pair pointing at the user code that triggered an error."""

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


def _find_user_frame() -> Any | None:
    """Walk up the stack to the first frame outside the courier package."""
    frame = sys._getframe(1)
    while frame is not None:
        filename = os.path.abspath(frame.f_code.co_filename)
        in_library = filename.startswith(_COURIER_PKG_DIR + os.sep)
        in_pydantic = f'{os.sep}pydantic{os.sep}' in filename
        if not in_library and not in_pydantic and not filename.startswith('<'):
            return frame
        frame = frame.f_back
    return None


@dataclass
class CourierError(Exception):
    """Base exception for courier startup/validation errors."""

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

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        """Render as ``error[E200]: message`` followed by location, notes and help."""
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
                indent = len(source_line) - len(stripped)
                lines.append(f'   {c.BLUE}{gutter}|{c.RESET}')
                lines.append(f'   {c.BLUE}{line_num}|{c.RESET} {source_line}')
                lines.append(
                    f'   {c.BLUE}{gutter}|{c.RESET} '
                    f'{c.RED}{" " * indent}{"^" * len(stripped)}{c.RESET}'
                )

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
        # Plain text so the message is safe for log sinks.
        return self.format_rust_style(use_colors=False)


@dataclass
class ConfigurationError(CourierError):
    """Raised when configuration or CLI input is invalid."""

    pass


class ValidationReport:
    """Collects the errors of one validation phase so they surface together."""

    def __init__(self, phase_name: str) -> None:
        self.phase_name: str = phase_name
        self.errors: list[CourierError] = []

    def add(self, error: CourierError) -> None:
        self.errors.append(error)

    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        if use_colors is None:
            use_colors = _should_use_colors()
        c = _Colors if use_colors else _NoColors
        parts = [e.format_rust_style(use_colors=use_colors) for e in self.errors]
        parts.append(
            f'\n{c.BOLD}{c.RED}error{c.RESET}: aborting due to '
            f'{len(self.errors)} previous errors'
        )
        return '\n'.join(parts)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


@dataclass
class MultipleValidationErrors(CourierError):
    """Raised when a validation phase collected two or more errors."""

    report: ValidationReport = field(default_factory=lambda: ValidationReport(''))

    def __post_init__(self) -> None:
        if not self.message:
            self.message = f'aborting due to {len(self.report.errors)} previous errors'
        # Location is per-error inside the report.
        Exception.__init__(self, self.message)

    def format_rust_style(self, use_colors: bool | None = None) -> str:
        return self.report.format_rust_style(use_colors=use_colors)

    def __str__(self) -> str:
        return self.format_rust_style(use_colors=False)


def raise_collected(report: ValidationReport) -> None:
    """Raise what *report* collected.

    - 0 errors: returns normally
    - 1 error: raises that error unchanged
    - 2+ errors: raises ``MultipleValidationErrors``
    """
    if not report.errors:
        return
    if len(report.errors) == 1:
        raise report.errors[0]
    raise MultipleValidationErrors(message='', report=report)


_original_excepthook = sys.excepthook


def _courier_excepthook(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: Any,
) -> None:
    if _env_flag('COURIER_PLAIN_ERRORS') or not isinstance(exc_value, CourierError):
        _original_excepthook(exc_type, exc_value, exc_tb)
        return

    print(exc_value.format_rust_style(), file=sys.stderr)
    if _env_flag('COURIER_VERBOSE'):
        c = _Colors if _should_use_colors() else _NoColors
        print(f'\n{c.DIM}Full traceback (COURIER_VERBOSE=1):{c.RESET}', file=sys.stderr)
        traceback.print_exception(exc_type, exc_value, exc_tb, file=sys.stderr)


def install_error_handler() -> None:
    """Render uncaught ``CourierError`` instances in the compiler-like layout."""
    sys.excepthook = _courier_excepthook


# =============================================================================
# Runtime errors
# =============================================================================


class ListenerDisconnectedError(RuntimeError):
    """The notification connection was lost.

    Fatal by contract: the worker exits and relies on its supervisor to restart
    it rather than continuing in poll-only mode.
    """


class ContentNotFoundError(LookupError):
    """A queue item references content (e.g. an email template) that does not exist."""
