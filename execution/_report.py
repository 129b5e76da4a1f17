# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
from typing import List
from typing import Mapping
from typing import NamedTuple
from typing import Sequence

from convergence import SessionReport
from convergence import StepResult
from execution._results import Created
from execution._results import ExecutionResult
from execution._results import Failed
from execution._results import Skipped


class RunReport(NamedTuple):
    results: Mapping[str, ExecutionResult]
    sessions: Sequence[SessionReport] = ()

    def is_success(self) -> bool:
        if not all(isinstance(r, Created) for r in self.results.values()):
            return False
        return all(session.is_success() for session in self.sessions)

    def names_with(self, result_type) -> List[str]:
        return [name for name, result in self.results.items() if isinstance(result, result_type)]


def format_report(report: RunReport) -> str:
    lines = ["Resources:"]
    for name, result in report.results.items():
        lines.append(f"  {name}: {result.describe()}")
    if report.sessions:
        lines.append("Remote sessions:")
    for session in report.sessions:
        where = f" at {session.address}" if session.address is not None else ""
        if session.skipped is not None:
            lines.append(f"  {session.name}: Skipped: {session.skipped}")
            continue
        status = "OK" if session.is_success() else "FAILED"
        lines.append(f"  {session.name}{where}: {status}")
        lines.extend(f"    {_format_step(result)}" for result in session.results)
        if session.error is not None:
            lines.append(f"    {session.error}")
    failed = len(report.names_with(Failed))
    skipped = len(report.names_with(Skipped))
    sessions_failed = sum(1 for s in report.sessions if not s.is_success())
    if report.is_success():
        lines.append("Result: SUCCESS")
    else:
        lines.append(
            f"Result: FAILURE: {failed} failed, {skipped} skipped, "
            f"{sessions_failed} sessions not converged")
    return '\n'.join(lines)


def _format_step(result: StepResult) -> str:
    action = result.action.value if result.action is not None else '-'
    if result.enablement is not None:
        action += f", enablement {result.enablement.value}"
    if result.success:
        return f"{result.step!r}: {action}"
    return f"{result.step!r}: {action}: FAILED: {result.error}"
