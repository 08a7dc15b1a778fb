"""Command autocompletion for the trquote REPL.

Completes command names (with their help text), the ids of open requests
for ``close``, and log levels for ``loglevel``.
"""

from prompt_toolkit.completion import Completer, Completion


class CommandCompleter(Completer):
    """Completer for REPL commands and their arguments."""

    # Map command names to argument completer method names
    _ARG_COMPLETERS = {
        "close": "_complete_request_ids",
        "add": "_complete_rics",
        "snap": "_complete_rics",
        "loglevel": "_complete_log_levels",
    }

    def __init__(self, app):
        """app is the QuoteCmdlineApp instance."""
        self.app = app

    def get_completions(self, document, complete_event):
        text = document.text_before_cursor

        parts = text.split(None, 1)
        if len(parts) <= 1 and not text.endswith(" "):
            # Still typing the command name
            prefix = parts[0] if parts else ""
            yield from self._complete_command_name(prefix)
        else:
            cmd_name = parts[0]
            arg_text = parts[1] if len(parts) > 1 else ""
            yield from self._complete_arguments(cmd_name, arg_text)

    def _complete_command_name(self, prefix):
        prefix_lower = prefix.lower()
        for cmd_name, doc in sorted(self.app.COMMANDS.items()):
            if cmd_name.startswith(prefix_lower):
                yield Completion(cmd_name, start_position=-len(prefix), display_meta=doc)

    def _complete_arguments(self, cmd_name, arg_text):
        method_name = self._ARG_COMPLETERS.get(cmd_name.lower())
        if method_name:
            words = arg_text.split()
            # only the first argument is completed
            if len(words) > 1 or (words and arg_text.endswith(" ")):
                return

            current_word = words[-1] if words else ""
            yield from getattr(self, method_name)(current_word)

    def _complete_request_ids(self, prefix):
        for rid, (ric, _streaming) in sorted(self.app.requests.items()):
            if str(rid).startswith(prefix):
                yield Completion(str(rid), start_position=-len(prefix), display_meta=ric)

    def _complete_rics(self, prefix):
        prefix_upper = prefix.upper()
        for ric in sorted({ric for ric, _ in self.app.requests.values()}):
            if ric.upper().startswith(prefix_upper):
                yield Completion(ric, start_position=-len(prefix))

    _LOG_LEVELS = ["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

    def _complete_log_levels(self, prefix):
        for level in self._LOG_LEVELS:
            if level.startswith(prefix.upper()):
                yield Completion(level, start_position=-len(prefix))
