import sys
import traceback

from rich import print
from rich.console import Console
from rich.traceback import Traceback


class Logger:
    show_warnings = True
    silent = False
    debug_mode = False
    console = Console()

    @classmethod
    def error(cls, text, exception=None):
        """Log an error message. In debug mode a traceback for `exception` follows it."""
        Logger.print(text, "ERROR:", "red")

        if cls.debug_mode and exception is not None:
            cls.debug_exception(exception)

    @classmethod
    def clear(cls):
        sys.stdout.write("\r" + " " * 100 + "\r")

    @classmethod
    def warning(cls, text):
        if cls.show_warnings:
            Logger.print(text, "WARNING:", "yellow")

    @classmethod
    def info(cls, text):
        Logger.print(text, "INFO:", "green")

    @classmethod
    def debug(cls, text):
        if cls.debug_mode:
            Logger.print(text, "DEBUG:", "blue")

    @classmethod
    def print(cls, text, head, color="green", end="\n"):
        if cls.silent:
            return
        Logger.clear()
        print(f"[{color}]{head} {text}[/{color}]", end=end, flush=True)

    @classmethod
    def debug_exception(cls, exception):
        if not cls.debug_mode or cls.silent:
            return

        Logger.clear()
        print(f"\n[yellow]Exception Type:[/yellow] [red]{type(exception).__name__}[/red]")
        print(f"[yellow]Exception Message:[/yellow] [red]{exception}[/red]\n")

        try:
            tb = Traceback.from_exception(
                type(exception),
                exception,
                exception.__traceback__,
                show_locals=False,
            )
            cls.console.print(tb)
        except Exception:
            traceback.print_exception(type(exception), exception, exception.__traceback__)

    @classmethod
    def set_debug_mode(cls, enabled: bool):
        cls.debug_mode = enabled
        if enabled:
            Logger.info("🐛 Debug mode ENABLED - Detailed error information will be shown")
