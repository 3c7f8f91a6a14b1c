"""Operator prompts: ask until the validator accepts, or fail when not interactive."""

import getpass
from typing import Callable, Optional

from createvm.proxmox_utils import logger
from createvm.validators import Result, ValidationError, is_yes, validate_yes_no


Validator = Callable[[str], Result]


class Prompter:
    """
    Ask the operator for values

    In non-interactive mode nothing is read from the terminal: the default is
    used when it is valid, otherwise a ValidationError is raised.
    """

    def __init__(self, interactive: bool = True, input_func=input, password_func=getpass.getpass):
        self.interactive = interactive
        self.input_func = input_func
        self.password_func = password_func

    def ask(self, prompt: str, validator: Validator, default: Optional[str] = None) -> str:
        if not self.interactive:
            value = default if default is not None else ''
            ok, reason = validator(value)
            if not ok:
                raise ValidationError(f"{prompt}: {reason}")
            logger.info(f"→ {prompt}: using default '{value}'")
            return value

        while True:
            if default:
                answer = self.input_func(f"{prompt} [{default}]: ").strip()
                value = answer or default
            else:
                value = self.input_func(f"{prompt}: ").strip()

            ok, reason = validator(value)
            if ok:
                return value
            logger.error(reason)

    def ask_password(self, prompt: str, default: str) -> str:
        """Read a secret without echo; an empty answer means default"""
        if not self.interactive:
            return default
        return self.password_func(f"{prompt}: ") or default

    def confirm(self, prompt: str, default: bool = True) -> bool:
        if not self.interactive:
            return True
        answer = self.ask(f"{prompt} ({'Y/n' if default else 'y/N'})", validate_yes_no, 'Y' if default else 'N')
        return is_yes(answer)


def resolve(prompter: Prompter, value, validator: Validator, prompt: str, default: Optional[str] = None) -> str:
    """
    Return value if valid, otherwise ask for it

    A value that was given but is invalid is fatal when not interactive.
    """
    if value is not None:
        value = str(value)
        ok, reason = validator(value)
        if ok:
            return value
        if not prompter.interactive:
            raise ValidationError(reason)
        logger.error(reason)
    return prompter.ask(prompt, validator, default)
