"""Aggregation rules shared by the state store and the display layer.

Every policy decision that more than one component needs lives here as a
pure function so that the reduction path, the immediate renderer and the
final summary always agree:

- Subtest / parent detection
- File location extraction from free-text output
- Relative package path shortening
- Build event package names
- Displayable package failure classification
- Relevant output filtering
- Summary totals
"""

from collections.abc import Iterable, Mapping

from .models import PACKAGE_SENTINEL, PackageState, SummaryStats, TestResult, result_key

SUBTEST_SEPARATOR = "/"

SOURCE_FILE_SUFFIXES = (".go",)

# Package output substrings that mark a build or compile error
BUILD_ERROR_MARKERS = (
    "[build failed]",
    "build constraints exclude all Go files",
    "no buildable Go source files",
    "syntax error",
    "cannot find package",
    "undefined:",
)

# Test framework scaffolding lines dropped from displayed output
SCAFFOLDING_PREFIXES = ("=== RUN", "=== PAUSE", "=== CONT")

_HOSTING_DOMAINS = ("github.com", "gitlab.com", "bitbucket.org")
_DOMAIN_HINTS = ("com", "org", "net")


def is_subtest(test: str) -> bool:
    """True if the test name denotes a subtest."""
    return SUBTEST_SEPARATOR in test


def parent_test_name(test: str) -> str:
    """Name of the top-level test owning a subtest (up to the first separator)."""
    return test.split(SUBTEST_SEPARATOR, 1)[0]


def is_parent_with_subtests(test: str, package: str, result_keys: Iterable[str]) -> bool:
    """Check whether a top-level test has any known subtests.

    Subtests are discovered incrementally, so callers must evaluate this at the
    moment the parent's own completion event arrives.

    Args:
        test: Test name to check.
        package: Owning package.
        result_keys: Keys of every result currently in the store.

    Returns:
        True if the test has no separator and some key starts with "package/test/".
    """
    if is_subtest(test):
        return False
    prefix = f"{result_key(package, test)}{SUBTEST_SEPARATOR}"
    return any(key.startswith(prefix) for key in result_keys)


def extract_file_location(output: str) -> str:
    """Extract a "file:line" location from one line of test output.

    Returns:
        "file.go:NN" if the line starts with a Go source file and a line number,
        otherwise an empty string.
    """
    parts = output.strip().split(":", 2)
    if len(parts) < 2:
        return ""
    file_name, line_number = parts[0], parts[1]
    if not file_name.endswith(SOURCE_FILE_SUFFIXES):
        return ""
    if not (line_number.isascii() and line_number.isdigit()):
        return ""
    return f"{file_name}:{line_number}"


def extract_file_location_with_package(output: str, package: str) -> str:
    """Extract a location and prefix it with the relative package path.

    File names that already contain a path separator are returned as they are.
    """
    location = extract_file_location(output)
    if not location or "/" in location.split(":", 1)[0] or not package:
        return location
    relative = get_relative_package_path(package)
    if not relative:
        return location
    return f"{relative}/{location}"


def get_relative_package_path(package: str) -> str:
    """Shorten a fully qualified package path to a readable relative path.

    Examples:
        github.com/user/repo/example/broken -> example/broken
        example.com/mod/pkg -> mod/pkg
        a/b/c -> b/c
    """
    parts = package.split("/")
    if len(parts) <= 1:
        return ""

    for i, part in enumerate(parts):
        if part in _HOSTING_DOMAINS:
            if i + 3 < len(parts):
                return "/".join(parts[i + 3 :])
            break
        if "." in part and any(hint in part for hint in _DOMAIN_HINTS):
            if i + 1 < len(parts):
                return "/".join(parts[i + 1 :])
            break

    if len(parts) == 2:
        return parts[1]
    return "/".join(parts[-2:])


def build_package_name(import_path: str) -> str:
    """Package name of a build event, without the test binary suffix.

    Examples:
        example.com/mod/pkg [example.com/mod/pkg.test] -> example.com/mod/pkg
        example.com/mod/pkg -> example.com/mod/pkg
    """
    return import_path.split(" [", 1)[0]


def should_display_package_failure(pkg: PackageState) -> bool:
    """Decide whether a package-level failure is worth surfacing on its own.

    A package failure is displayable when its output carries a build error
    marker, when it never ran a test but produced output, or when it failed
    without any individual test failing (setup/teardown failure). Ordinary
    per-test failures are not reported a second time.
    """
    for line in pkg.output:
        trimmed = line.strip()
        if any(marker in trimmed for marker in BUILD_ERROR_MARKERS):
            return True

    if pkg.individual_test_failed == 0 and pkg.failed > 0 and pkg.total > 0:
        return True

    if pkg.total == 0 and len(pkg.output) > 0:
        return True

    return False


def has_package_failure(pkg: PackageState, results: Mapping[str, TestResult]) -> bool:
    """True if the package recorded a package-level failure that should be shown."""
    sentinel = results.get(result_key(pkg.name, PACKAGE_SENTINEL))
    return sentinel is not None and sentinel.failed and should_display_package_failure(pkg)


def extract_relevant_output(output: Iterable[str]) -> list[str]:
    """Drop blank lines and test framework scaffolding, keep everything else verbatim."""
    relevant = []
    for line in output:
        trimmed = line.strip()
        if not trimmed or trimmed.startswith(SCAFFOLDING_PREFIXES):
            continue
        relevant.append(line)
    return relevant


def collect_summary_stats(packages: Mapping[str, PackageState], results: Mapping[str, TestResult]) -> SummaryStats:
    """Sum package counters and detect whether anything failed."""
    stats = SummaryStats()
    for pkg in packages.values():
        stats.total += pkg.total
        stats.passed += pkg.passed
        stats.failed += pkg.failed
        stats.skipped += pkg.skipped
        stats.running += pkg.running
        if pkg.failed > 0 or has_package_failure(pkg, results):
            stats.has_failures = True
    return stats


def should_show_package_name(packages: Mapping[str, PackageState]) -> bool:
    """Show package names next to test names only when more than one package ran tests."""
    return sum(1 for pkg in packages.values() if pkg.total > 0) > 1
