# flowscript/config package
# YAML-backed registries (bubbles, triggers) and parser tunables.
