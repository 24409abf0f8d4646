"""HTTP blueprints (JSON API). Each subpackage exposes one Blueprint."""
