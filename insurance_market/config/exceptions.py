"""Custom exceptions for configuration validation.

Since:
    Version 0.1.0
"""

from typing import List


class ConfigurationError(Exception):
    """Raised when configuration validation finds critical issues.

    This exception is raised by :meth:`Config.validate` before the first event
    is dispatched when the agent population or run settings cannot produce a
    meaningful simulation (empty populations, duplicate ids, dangling broker
    references, negative seed).

    Attributes:
        issues: List of specific configuration problems found.

    Examples:
        Catching and inspecting issues::

            try:
                config.validate()
            except ConfigurationError as e:
                for issue in e.issues:
                    print(f"  - {issue}")
    """

    def __init__(self, issues: List[str]) -> None:
        self.issues = issues
        bullet_list = "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(
            f"Configuration has {len(issues)} critical "
            f"{'issue' if len(issues) == 1 else 'issues'}:\n{bullet_list}"
        )
