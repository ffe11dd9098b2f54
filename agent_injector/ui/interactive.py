"""
Interactive Java process selection and injection menu.
"""

import sys
from typing import Callable, List, Optional, Sequence

from ..core.exceptions import InjectorError
from ..core.injector import Injector
from ..models.process_info import AgentDescriptor, ClassifiedProcess, InjectionResult
from ..output.formatters import TextFormatter, truncate


class InjectMenu:
    """Text menu for browsing Java processes and injecting agents."""

    def __init__(self, injector: Injector, agents: Sequence[AgentDescriptor],
                 input_func: Callable[[str], str] = input,
                 print_func: Callable[..., None] = print,
                 require_confirmation: bool = True):
        self.injector = injector
        self.agents = list(agents)
        self.input = input_func
        self.print = print_func
        self.require_confirmation = require_confirmation
        self.formatter = TextFormatter()
        self.filter_mode = 'all'  # all, missing, user
        self.filter_user = None
        self.page = 0
        self.page_size = 20
        self.results: List[InjectionResult] = []

    def run(self) -> List[InjectionResult]:
        """Loop until the user quits. Returns every injection result."""
        processes = self._load_processes()
        while True:
            visible = self._apply_filter(processes)
            start_idx = self.page * self.page_size
            end_idx = min(start_idx + self.page_size, len(visible))
            current_page = visible[start_idx:end_idx]

            self._display_process_menu(current_page, len(visible))
            try:
                choice = self.input(self._get_menu_prompt(current_page, end_idx, len(visible))).strip().lower()
            except (KeyboardInterrupt, EOFError):
                self.print("\nExiting", file=sys.stderr)
                return self.results

            if choice == 'q':
                return self.results
            if choice == 'r':
                processes = self._load_processes()
            elif choice == 'n' and end_idx < len(visible):
                self.page += 1
            elif choice == 'p' and self.page > 0:
                self.page -= 1
            elif choice == 'f':
                self._handle_filter_change()
            elif choice.startswith('i'):
                if self._handle_inject(choice[1:], current_page):
                    processes = self._load_processes()
            elif choice.isdigit():
                self._show_detail(int(choice), current_page)
            else:
                self.print("Invalid selection")

    def _load_processes(self) -> List[ClassifiedProcess]:
        try:
            processes = self.injector.detector.discover()
        except InjectorError as e:
            self.print(f"Failed to discover processes: {e}", file=sys.stderr)
            return []
        return sorted(processes, key=lambda proc: proc.pid)

    def _apply_filter(self, processes: List[ClassifiedProcess]) -> List[ClassifiedProcess]:
        if self.filter_mode == 'missing':
            return [p for p in processes if self.injector.needs_injection(p, self.agents)]
        if self.filter_mode == 'user':
            return [p for p in processes if p.user == self.filter_user]
        return processes

    def _display_process_menu(self, current_page: List[ClassifiedProcess], total: int):
        filter_desc = f"Filter: {self.filter_mode}" + (f" ({self.filter_user})" if self.filter_user else "")
        total_pages = max(1, (total - 1) // self.page_size + 1)

        self.print(f"\nJava Processes (Page {self.page + 1}/{total_pages}) - {filter_desc}:")
        self.print(f"{'#':<4} {'PID':<8} {'User':<12} {'Main Class/JAR':<32} {'Agents'}")
        self.print("-" * 70)
        for i, proc in enumerate(current_page):
            agents = str(len(proc.agents)) if proc.agents else 'none'
            self.print(f"{i+1:<4} {proc.pid:<8} {proc.user:<12} {truncate(proc.entry_point, 30):<32} {agents}")

    def _get_menu_prompt(self, current_page: List[ClassifiedProcess], end_idx: int, total: int) -> str:
        nav_options = []
        if self.page > 0:
            nav_options.append("'p' previous page")
        if end_idx < total:
            nav_options.append("'n' next page")
        nav_options.append("'i <n,n>' inject")
        nav_options.append("'f' filter")
        nav_options.append("'r' refresh")
        nav_options.append("'q' quit")

        prompt = f"\nShow details (1-{len(current_page)})" if current_page else "\nNo processes"
        prompt += f", {', '.join(nav_options)}: "
        return prompt

    def _show_detail(self, number: int, current_page: List[ClassifiedProcess]):
        if 1 <= number <= len(current_page):
            self.print(self.formatter.format_process_detail(current_page[number - 1]))
        else:
            self.print("Invalid selection")

    def _parse_selection(self, text: str, current_page: List[ClassifiedProcess]) -> List[ClassifiedProcess]:
        selected = []
        for part in text.replace(' ', '').split(','):
            if not part:
                continue
            if not part.isdigit() or not 1 <= int(part) <= len(current_page):
                raise ValueError(f"invalid process number: {part}")
            selected.append(current_page[int(part) - 1])
        return selected

    def _handle_inject(self, text: str, current_page: List[ClassifiedProcess]) -> bool:
        """Inject the selected processes. True if anything was attempted."""
        try:
            selected = self._parse_selection(text, current_page)
        except ValueError as e:
            self.print(str(e))
            return False
        if not selected:
            self.print("Select processes to inject, e.g. 'i 1,3'")
            return False

        self.print(self.formatter.format_targets(selected, self.agents))
        if self.require_confirmation:
            confirm = self.input("Proceed with injection? (y/N): ").strip().lower()
            if confirm not in ['y', 'yes']:
                self.print("Injection cancelled")
                return False

        results = self.injector.batch_inject(selected, self.agents)
        self.results.extend(results)
        self.print(self.formatter.format_results(results))
        return True

    def _handle_filter_change(self):
        self.print("\nFilter options: 1) All Java processes  2) Missing agents  3) Specific user")
        filter_choice = self.input("Select filter option (1-3): ").strip()
        if filter_choice == '1':
            self.filter_mode = 'all'
            self.filter_user = None
        elif filter_choice == '2':
            self.filter_mode = 'missing'
            self.filter_user = None
        elif filter_choice == '3':
            self.filter_user = self.input("Enter username: ").strip()
            if self.filter_user:
                self.filter_mode = 'user'
        self.page = 0
