"""
Canned per-rule enrichment content, used whenever the model is unavailable
or answers with something unusable
"""

from typing import Dict, List

from .base import Enrichment, EnricherPort
from ..pipeline.state import make_timeline

DEFAULT_TIMELINE = ["Issue noticed", "Problem worsens", "Refactor needed", "Technical debt grows"]

DEFAULT_EXPLANATION = (
    "This code pattern may lead to issues in the future. "
    "Consider refactoring to improve maintainability and reduce technical debt."
)

DEFAULT_FIX = "// Refactor this code to follow best practices"

FALLBACK_TIMELINES: Dict[str, List[str]] = {
    "hardcoded-secrets": [
        "TODO: why hardcoded?", "FIXME: can't rotate keys",
        "Security audit flags this", "Major security incident risk",
    ],
    "hardcoded-credentials": [
        "Works but smells bad", "Can't change password safely",
        "Credentials leaked in git history", "Database breach via exposed creds",
    ],
    "sql-injection": [
        "Works but feels wrong", "Security scan detects vulnerability",
        "Exploit attempt in logs", "Data breach via injection",
    ],
    "eval-usage": [
        "Code review flags this", "Security policy violation",
        "XSS attack vector identified", "Remote code execution exploit",
    ],
    "exposed-env": [
        "Secrets visible in repo", "Keys leaked on GitHub",
        "Unauthorized API access", "Costly security breach",
    ],
    "no-http-timeout": [
        "Occasional slow requests", "Timeouts under load",
        "Cascading failures in production", "Entire service becomes unstable",
    ],
    "empty-catch": [
        "Errors silently ignored", "Debugging becomes nightmare",
        "Production bugs go unnoticed", "Data corruption undetected",
    ],
    "no-validation": [
        "Invalid data sneaks through", "Database integrity issues",
        "Users exploit missing validation", "Major data corruption incident",
    ],
    "unhandled-promise": [
        "Occasional unhandled rejection warnings", "Production errors not logged",
        "Silent failures in background", "Critical operations fail silently",
    ],
    "god-file": [
        "File getting unwieldy", "Merge conflicts every PR",
        "Nobody dares touch it", "The file everyone fears",
    ],
    "long-function": [
        "Function hard to understand", "Bugs hide in complexity",
        "Refactor becomes too risky", "Nobody can modify safely",
    ],
    "magic-numbers": [
        "TODO: what does 50 mean?", "FIXME: need to change limit",
        "Can't find all instances", "Inconsistent limits everywhere",
    ],
    "todo-clusters": [
        "TODOs pile up", "Nobody remembers context",
        "TODOs become permanent comments", "Archaeological mystery for future devs",
    ],
}

FALLBACK_EXPLANATIONS: Dict[str, str] = {
    "hardcoded-secrets": (
        "This code contains hardcoded API keys or secrets that should be in environment variables. "
        "If these credentials leak through version control, they cannot be rotated without code changes."
    ),
    "hardcoded-credentials": (
        "Database credentials are hardcoded in the connection string, making it impossible to rotate "
        "passwords without code changes. These credentials are visible in version control history."
    ),
    "sql-injection": (
        "This query uses string concatenation to build SQL, making it vulnerable to SQL injection attacks. "
        "User input should be parameterized to prevent malicious queries."
    ),
    "eval-usage": (
        "The code uses eval() or exec() which allows arbitrary code execution. "
        "This is a major security risk that can be exploited to run malicious code."
    ),
    "exposed-env": (
        "The .env file is committed to version control, exposing sensitive credentials. "
        "This file should be in .gitignore and credentials should be managed securely."
    ),
    "no-http-timeout": (
        "HTTP requests lack timeout configuration, which can cause the application to hang indefinitely. "
        "This leads to resource exhaustion and poor user experience under high load."
    ),
    "empty-catch": (
        "Errors are caught but not handled, causing silent failures. "
        "This makes debugging extremely difficult and can lead to data corruption going unnoticed."
    ),
    "no-validation": (
        "API endpoints lack input validation, allowing invalid or malicious data into the system. "
        "This can lead to data integrity issues and security vulnerabilities."
    ),
    "unhandled-promise": (
        "Promises lack .catch() handlers, causing unhandled rejections. "
        "Errors in async operations will fail silently without proper logging or recovery."
    ),
    "god-file": (
        "This file has grown too large and complex, making it difficult to understand and maintain. "
        "Large files lead to merge conflicts and discourage refactoring."
    ),
    "long-function": (
        "This function is too long, making it hard to understand and test. "
        "Long functions often hide multiple responsibilities that should be split."
    ),
    "magic-numbers": (
        "Numeric literals are used directly without named constants, making the code hard to understand "
        "and maintain. Changes require hunting for all instances."
    ),
    "todo-clusters": (
        "Multiple TODO/FIXME comments indicate technical debt and incomplete work. "
        "These comments often lose context over time and become permanent fixtures."
    ),
}

FALLBACK_FIXES: Dict[str, str] = {
    "hardcoded-secrets": "const API_KEY = process.env.API_KEY;\n// Add to .env: API_KEY=your_key_here",
    "hardcoded-credentials": "const dbUrl = process.env.DATABASE_URL;\n// Add to .env: DATABASE_URL=postgresql://...",
    "sql-injection": 'db.query("SELECT * FROM users WHERE id = $1", [userId])',
    "eval-usage": "// Remove eval() and use safer alternatives like JSON.parse()",
    "exposed-env": "// Add .env to .gitignore\n// Rotate all exposed credentials",
    "no-http-timeout": "fetch(url, { signal: AbortSignal.timeout(5000) })",
    "empty-catch": 'catch (error) {\n  console.error("Operation failed:", error);\n  throw error;\n}',
    "no-validation": "// Add validation: const schema = z.object({ ... });\n// schema.parse(req.body);",
    "unhandled-promise": 'promise.then(handler).catch(error => {\n  console.error("Error:", error);\n});',
    "god-file": "// Split into smaller modules:\n// - Extract related functions\n// - Group by responsibility",
    "long-function": "// Break into smaller functions:\n// 1. Extract helper functions\n// 2. Each function does one thing",
    "magic-numbers": "const MAX_RETRIES = 3;\n// Use the constant instead of literal",
    "todo-clusters": "// Create issues for TODOs\n// Remove or complete them",
}


def fallback_timeline(rule_id: str) -> Dict[str, str]:
    return make_timeline(FALLBACK_TIMELINES.get(rule_id, DEFAULT_TIMELINE))


def fallback_explanation(rule_id: str) -> str:
    return FALLBACK_EXPLANATIONS.get(rule_id, DEFAULT_EXPLANATION)


def fallback_fix(rule_id: str) -> str:
    return FALLBACK_FIXES.get(rule_id, DEFAULT_FIX)


def fallback_enrichment(rule_id: str) -> Enrichment:
    return Enrichment(
        timeline=fallback_timeline(rule_id),
        explanation=fallback_explanation(rule_id),
        fix=fallback_fix(rule_id),
    )


class FallbackEnricher(EnricherPort):
    """Offline enricher: canned content only, no network calls"""

    name = "fallback"

    async def enrich(self, rule_id: str, file: str, snippet: str) -> Enrichment:
        return fallback_enrichment(rule_id)
