"""Cross-cutting helpers: error types and logging setup."""
