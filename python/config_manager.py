"""
Configuration Management Module
Loads and validates configuration from config.yaml
"""

import os
import yaml
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Optional, List

logger = logging.getLogger(__name__)

VALID_ENVIRONMENTS = ("production", "development", "test")
VALID_ROLES = ("ADMIN", "SALES_MANAGER", "SALES_REPRESENTATIVE", "DISTRIBUTOR")


@dataclass
class AppConfig:
    """Application-level settings"""
    name: str = "Distributor Onboarding API"
    environment: str = "production"
    api_prefix: str = "/api/v1"
    cors_origins: List[str] = field(default_factory=list)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@dataclass
class DatabaseConfig:
    """Database configuration"""
    host: str = "localhost"
    port: int = 5432
    user: str = "distributor_user"
    password: str = "distributor_password"
    name: str = "distributor_db"
    pool_size: int = 5
    max_overflow: int = 10
    echo: bool = False


@dataclass
class ApiKeyEntry:
    """One API key and the staff principal it authenticates"""
    key: str
    user_id: str
    name: str
    role: str = "SALES_REPRESENTATIVE"


@dataclass
class AuthConfig:
    """Authentication settings"""
    api_keys: List[ApiKeyEntry] = field(default_factory=list)
    dev_user_name: str = "Development Admin"


@dataclass
class ProvisioningConfig:
    """Distributor account provisioning settings"""
    bcrypt_rounds: int = 10
    username_prefix: str = "dist_"
    email_domain: str = "distributor.local"
    password_length: int = 12


@dataclass
class NotificationConfig:
    """Approval email settings (Mailjet)"""
    enabled: bool = True
    mailjet_api_key: str = ""
    mailjet_secret_key: str = ""
    from_email: str = "noreply@distributor.local"
    from_name: str = "Distributor Onboarding"
    api_url: str = "https://api.mailjet.com/v3.1/send"
    login_url: str = "http://localhost:3000/login"
    timeout_seconds: int = 10
    max_workers: int = 2

    @property
    def is_configured(self) -> bool:
        return bool(self.mailjet_api_key and self.mailjet_secret_key)


@dataclass
class UploadConfig:
    """Document upload settings"""
    directory: str = "uploads/distributor-documents"
    max_file_size_mb: int = 5
    allowed_extensions: List[str] = field(default_factory=lambda: [
        ".pdf", ".jpg", ".jpeg", ".png"
    ])


@dataclass
class PaginationConfig:
    """List endpoint pagination limits"""
    default_limit: int = 10
    max_limit: int = 100


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: str = ""
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    security_log_dir: str = "logs"
    security_log_file: bool = True


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


class ConfigManager:
    """Manages system configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.app: AppConfig = AppConfig()
        self.database: DatabaseConfig = DatabaseConfig()
        self.auth: AuthConfig = AuthConfig()
        self.provisioning: ProvisioningConfig = ProvisioningConfig()
        self.notifications: NotificationConfig = NotificationConfig()
        self.uploads: UploadConfig = UploadConfig()
        self.pagination: PaginationConfig = PaginationConfig()
        self.logging: LoggingConfig = LoggingConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")
            self._apply_env_overrides()
            self._validate()

    @classmethod
    def create(cls, raw_config: Optional[Dict[str, Any]] = None) -> 'ConfigManager':
        """Build a configuration from an in-memory dict instead of a file

        Args:
            raw_config: Same structure as config.yaml

        Returns:
            A validated ConfigManager (not registered as the singleton)
        """
        instance = cls.__new__(cls)
        instance.config_path = None
        instance._raw_config = raw_config or {}
        instance.app = AppConfig()
        instance.database = DatabaseConfig()
        instance.auth = AuthConfig()
        instance.provisioning = ProvisioningConfig()
        instance.notifications = NotificationConfig()
        instance.uploads = UploadConfig()
        instance.pagination = PaginationConfig()
        instance.logging = LoggingConfig()
        instance._parse_all()
        return instance

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        env_path = os.getenv("CONFIG_PATH")
        if env_path:
            return Path(env_path)

        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        self._parse_all()

    def _parse_all(self) -> None:
        self._parse_app()
        self._parse_database()
        self._parse_auth()
        self._parse_provisioning()
        self._parse_notifications()
        self._parse_uploads()
        self._parse_pagination()
        self._parse_logging()
        self._apply_env_overrides()
        self._validate()

    def _parse_app(self) -> None:
        """Parse application configuration"""
        cfg = self._raw_config.get('app', {})
        self.app = AppConfig(
            name=cfg.get('name', self.app.name),
            environment=str(cfg.get('environment', self.app.environment)).lower(),
            api_prefix=cfg.get('api_prefix', self.app.api_prefix),
            cors_origins=list(cfg.get('cors_origins', []))
        )

    def _parse_database(self) -> None:
        """Parse database configuration"""
        cfg = self._raw_config.get('database', {})
        self.database = DatabaseConfig(
            host=cfg.get('host', self.database.host),
            port=cfg.get('port', self.database.port),
            user=cfg.get('user', self.database.user),
            password=cfg.get('password', self.database.password),
            name=cfg.get('name', self.database.name),
            pool_size=cfg.get('pool_size', self.database.pool_size),
            max_overflow=cfg.get('max_overflow', self.database.max_overflow),
            echo=cfg.get('echo', self.database.echo)
        )

    def _parse_auth(self) -> None:
        """Parse authentication configuration"""
        cfg = self._raw_config.get('auth', {})
        keys = []
        for entry in cfg.get('api_keys', []) or []:
            if not isinstance(entry, dict) or not entry.get('key'):
                raise ConfigurationError("Each auth.api_keys entry needs a 'key'")
            keys.append(ApiKeyEntry(
                key=str(entry['key']),
                user_id=str(entry.get('user_id', entry['key'][:8])),
                name=entry.get('name', 'API client'),
                role=str(entry.get('role', 'SALES_REPRESENTATIVE')).upper()
            ))
        self.auth = AuthConfig(
            api_keys=keys,
            dev_user_name=cfg.get('dev_user_name', self.auth.dev_user_name)
        )

    def _parse_provisioning(self) -> None:
        """Parse provisioning configuration"""
        cfg = self._raw_config.get('provisioning', {})
        self.provisioning = ProvisioningConfig(
            bcrypt_rounds=cfg.get('bcrypt_rounds', 10),
            username_prefix=cfg.get('username_prefix', 'dist_'),
            email_domain=cfg.get('email_domain', 'distributor.local'),
            password_length=cfg.get('password_length', 12)
        )

    def _parse_notifications(self) -> None:
        """Parse notification configuration"""
        cfg = self._raw_config.get('notifications', {})
        defaults = NotificationConfig()
        self.notifications = NotificationConfig(
            enabled=cfg.get('enabled', True),
            mailjet_api_key=cfg.get('mailjet_api_key', ''),
            mailjet_secret_key=cfg.get('mailjet_secret_key', ''),
            from_email=cfg.get('from_email', defaults.from_email),
            from_name=cfg.get('from_name', defaults.from_name),
            api_url=cfg.get('api_url', defaults.api_url),
            login_url=cfg.get('login_url', defaults.login_url),
            timeout_seconds=cfg.get('timeout_seconds', defaults.timeout_seconds),
            max_workers=cfg.get('max_workers', defaults.max_workers)
        )

    def _parse_uploads(self) -> None:
        """Parse upload configuration"""
        cfg = self._raw_config.get('uploads', {})
        self.uploads = UploadConfig(
            directory=cfg.get('directory', self.uploads.directory),
            max_file_size_mb=cfg.get('max_file_size_mb', 5),
            allowed_extensions=[
                ext.lower() for ext in cfg.get('allowed_extensions', self.uploads.allowed_extensions)
            ]
        )

    def _parse_pagination(self) -> None:
        cfg = self._raw_config.get('pagination', {})
        self.pagination = PaginationConfig(
            default_limit=cfg.get('default_limit', 10),
            max_limit=cfg.get('max_limit', 100)
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._raw_config.get('logging', {})
        self.logging = LoggingConfig(
            level=cfg.get('level', 'INFO'),
            file=cfg.get('file', ''),
            console=cfg.get('console', True),
            format=cfg.get('format', self.logging.format),
            security_log_dir=cfg.get('security_log_dir', 'logs'),
            security_log_file=cfg.get('security_log_file', True)
        )

    def _apply_env_overrides(self) -> None:
        """Environment variables win over file values for secrets and mode"""
        env = os.getenv("APP_ENV")
        if env:
            self.app.environment = env.lower()
        api_key = os.getenv("MAILJET_API_KEY")
        if api_key:
            self.notifications.mailjet_api_key = api_key
        secret_key = os.getenv("MAILJET_SECRET_KEY")
        if secret_key:
            self.notifications.mailjet_secret_key = secret_key
        from_email = os.getenv("MAILJET_FROM_EMAIL")
        if from_email:
            self.notifications.from_email = from_email
        from_name = os.getenv("MAILJET_FROM_NAME")
        if from_name:
            self.notifications.from_name = from_name
        upload_dir = os.getenv("UPLOAD_DIR")
        if upload_dir:
            self.uploads.directory = upload_dir

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary (secrets omitted)"""
        return {
            'app': {
                'name': self.app.name,
                'environment': self.app.environment,
                'api_prefix': self.app.api_prefix
            },
            'database': {
                'host': self.database.host,
                'port': self.database.port,
                'user': self.database.user,
                'name': self.database.name
            },
            'auth': {
                'api_key_count': len(self.auth.api_keys)
            },
            'provisioning': {
                'bcrypt_rounds': self.provisioning.bcrypt_rounds,
                'username_prefix': self.provisioning.username_prefix,
                'email_domain': self.provisioning.email_domain,
                'password_length': self.provisioning.password_length
            },
            'notifications': {
                'enabled': self.notifications.enabled,
                'configured': self.notifications.is_configured,
                'from_email': self.notifications.from_email
            },
            'uploads': {
                'directory': self.uploads.directory,
                'max_file_size_mb': self.uploads.max_file_size_mb,
                'allowed_extensions': self.uploads.allowed_extensions
            },
            'pagination': {
                'default_limit': self.pagination.default_limit,
                'max_limit': self.pagination.max_limit
            }
        }

    def _validate(self) -> None:
        """Validate configuration values"""
        errors = []

        if self.app.environment not in VALID_ENVIRONMENTS:
            errors.append(
                f"app.environment must be one of {', '.join(VALID_ENVIRONMENTS)}, "
                f"got '{self.app.environment}'"
            )

        rounds = self.provisioning.bcrypt_rounds
        if not isinstance(rounds, int) or not 4 <= rounds <= 31:
            errors.append(f"provisioning.bcrypt_rounds must be between 4 and 31, got {rounds}")
        elif rounds < 10 and self.app.environment == "production":
            logger.warning("bcrypt_rounds=%d is below the recommended minimum of 10", rounds)

        if self.provisioning.password_length < 8:
            errors.append("provisioning.password_length must be at least 8")

        for entry in self.auth.api_keys:
            if entry.role not in VALID_ROLES:
                errors.append(f"auth.api_keys role '{entry.role}' is not a known role")

        if self.uploads.max_file_size_mb <= 0:
            errors.append("uploads.max_file_size_mb must be positive")

        if not 0 < self.pagination.default_limit <= self.pagination.max_limit:
            errors.append("pagination.default_limit must be between 1 and max_limit")

        if errors:
            raise ConfigurationError("; ".join(errors))


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)
