"""HTTP surface: application factory, dependencies, routes."""
