"""Configuration file schema and defaults for KOH Backup."""

DEFAULT_CONFIG = {
    "project_root": "~/public_html",
    "backup_root": "~/backup",
    "max_backups": 2,
    "compression_level": 9,
    "compressor": "pigz",
    "config_file": "includes/config.JTL-Shop.ini.php",
    "cache_dir": "templates_c",
    "cache_keep": ["min", ".htaccess"],
    "cache_cleanup": {
        "attempts": 3,
        "delay": 2,
    },
    "media_dirs": ["media", "mediafiles"],
    "mysql": {
        "dump_binary": "mysqldump",
        "client_binary": "mysql",
    },
    "max_prompt_attempts": 5,
}

CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "project_root": {
            "type": "string",
            "minLength": 1,
            "description": "Directory holding one sub-directory per project",
        },
        "backup_root": {
            "type": "string",
            "minLength": 1,
            "description": "Directory receiving bak.<project> folders",
        },
        "max_backups": {
            "type": "integer",
            "minimum": 0,
            "description": "Number of complete backup sets kept per project",
        },
        "compression_level": {
            "type": "integer",
            "minimum": 1,
            "maximum": 9,
        },
        "compressor": {
            "type": "string",
            "enum": ["pigz", "gzip"],
        },
        "config_file": {
            "type": "string",
            "minLength": 1,
            "description": "Project-relative path of the PHP config file",
        },
        "cache_dir": {
            "type": "string",
            "minLength": 1,
        },
        "cache_keep": {
            "type": "array",
            "items": {"type": "string"},
        },
        "cache_cleanup": {
            "type": "object",
            "properties": {
                "attempts": {"type": "integer", "minimum": 1},
                "delay": {"type": "number", "minimum": 0},
            },
            "additionalProperties": False,
        },
        "media_dirs": {
            "type": "array",
            "items": {"type": "string", "minLength": 1},
            "description": "Top-level project entries kept out of the web archive and stored in the media archive",
        },
        "mysql": {
            "type": "object",
            "properties": {
                "dump_binary": {"type": "string", "minLength": 1},
                "client_binary": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
        "max_prompt_attempts": {
            "type": "integer",
            "minimum": 1,
        },
    },
    "additionalProperties": False,
}
