"""Interactive input for the mount wizards."""

import getpass
from abc import ABC, abstractmethod
from typing import Sequence


class Prompter(ABC):
    """Source of user answers and sink for wizard output."""

    @abstractmethod
    def ask(self, message: str) -> str:
        ...

    @abstractmethod
    def show(self, message: str) -> None:
        ...

    def ask_secret(self, message: str) -> str:
        return self.ask(message)


class ConsolePrompter(Prompter):
    """Blocking prompts on the controlling terminal."""

    def ask(self, message: str) -> str:
        return input(message).strip()

    def show(self, message: str) -> None:
        print(message)

    def ask_secret(self, message: str) -> str:
        return getpass.getpass(message)


def show_menu(prompter: Prompter, items: Sequence[str]) -> None:
    for number, item in enumerate(items, start=1):
        prompter.show(f"  {number}) {item}")


def choose_index(prompter: Prompter, count: int, message: str) -> int:
    """
    Ask for a menu number until one in 1..count is given.

    Returns:
        The chosen 0-based index
    """
    while True:
        answer = prompter.ask(f"{message} [1-{count}]: ").strip()
        try:
            number = int(answer)
        except ValueError:
            prompter.show(f"'{answer}' is not a number")
            continue
        if 1 <= number <= count:
            return number - 1
        prompter.show(f"Please enter a number between 1 and {count}")


def ask_yes_no(prompter: Prompter, message: str) -> bool:
    """Only a literal 'y' or 'n' is accepted."""
    while True:
        answer = prompter.ask(f"{message} [y/n]: ").strip()
        if answer == "y":
            return True
        if answer == "n":
            return False
        prompter.show("Please answer 'y' or 'n'")
