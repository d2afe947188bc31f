"""Browser control surface and its Playwright backend."""
