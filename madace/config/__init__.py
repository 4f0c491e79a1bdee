# madace/config package
# Project configuration (config.yaml + installation discovery) and runtime
# settings (environment > settings.yaml > defaults).
#
# Modules are imported directly; this package re-exports nothing so that
# low-level modules can read settings without pulling in the whole core:
#     from madace.config.settings import get_log_level
#     from madace.config.project_config import auto_load_config
