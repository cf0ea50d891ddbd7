"""Services - cross-cutting helpers used by managers and the API layer."""
