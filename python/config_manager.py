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


DEFAULT_DELTAS: Dict[str, int] = {
    # Screening findings
    'sanctions': 50,
    'wanted': 75,
    'pep': 15,
    'offshore_leak': 35,
    'debarment': 40,
    'denied_party': 60,
    'entity_list': 45,
    'unverified_list': 25,
    'export_control': 35,
    'missing_person': 30,
    # Registry confirmations (bonuses)
    'registry_verified': -10,
    'registry_listed': -5,
    'lei_verified': -10,
    'public_filing': -15,
    # Email and domain
    'disposable_email': 20,
    'free_email': 5,
    'corporate_email': -5,
    'domain_age_critical': 35,
    'domain_age_high': 20,
    'domain_age_medium': 10,
    'domain_established': -5,
    # Jurisdiction
    'fatf_blacklist': 50,
    'sanctioned_jurisdiction': 60,
    'fatf_greylist': 20,
    'high_secrecy': 15,
    # Banking
    'invalid_iban': 15,
    'iban_sanctioned_country': 60,
    'invalid_swift': 10,
    'sanctioned_bank': 70,
    'high_risk_bank_country': 25,
    # Documents and shipping
    'high_risk_instrument': 15,
    'unverified_port': 10,
    'invalid_imo': 10,
}


@dataclass
class MatchingConfig:
    """Fuzzy identity matching parameters"""
    baseline_threshold: float = 0.5
    authoritative_threshold: float = 0.25
    max_edit_distance: int = 3
    surname_fallback: bool = True
    authoritative_datasets: List[str] = field(default_factory=lambda: [
        'interpol', 'fbi', 'europol', 'most_wanted', 'wanted',
        'us_ofac_sdn', 'un_sc_sanctions', 'eu_fsf', 'gb_hmt_sanctions',
    ])
    legal_suffixes: List[str] = field(default_factory=lambda: [
        'ltd', 'limited', 'llc', 'l l c', 'inc', 'incorporated', 'corp', 'corporation',
        'co', 'company', 'gmbh', 'ag', 'sa', 's a', 'sas', 'sarl', 'srl', 'spa', 'bv',
        'nv', 'plc', 'llp', 'lp', 'pte', 'pty', 'oy', 'ab', 'as', 'kg', 'kk', 'jsc',
        'ooo', 'pjsc', 'fze', 'fzco', 'fzc', 'dmcc', 'group', 'holding', 'holdings',
        'trading', 'shipping', 'bank', 'enterprises', 'industries', 'international',
    ])


@dataclass
class ScoringConfig:
    """Risk delta policy and domain age cut-offs"""
    deltas: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_DELTAS))
    domain_age_days: Dict[str, int] = field(default_factory=lambda: {
        'critical': 30,
        'high': 90,
        'medium': 365,
        'established': 1825,
    })

    def delta(self, key: str) -> int:
        return self.deltas.get(key, DEFAULT_DELTAS.get(key, 0))


@dataclass
class ClassificationConfig:
    """Score bands and override ceilings"""
    green_min: int = 86
    yellow_min: int = 60
    red_min: int = 31
    critical_score_cap: int = 25


@dataclass
class ProviderConfig:
    """External registry adapters"""
    enabled: List[str] = field(default_factory=lambda: [
        'opensanctions', 'interpol_red', 'interpol_yellow', 'icij_offshore',
        'worldbank_debarment', 'sam_exclusions', 'trade_csl',
        'uk_companies_house', 'singapore_acra', 'opencorporates', 'gleif', 'sec_edgar',
    ])
    timeout_seconds: float = 10.0
    timeouts: Dict[str, float] = field(default_factory=dict)
    retry_attempts: int = 2
    max_workers: int = 8
    user_agent: str = "TradeDiligence/1.0 (compliance screening)"
    api_key_env: Dict[str, str] = field(default_factory=lambda: {
        'opensanctions': 'OPENSANCTIONS_API_KEY',
        'trade_csl': 'TRADE_GOV_API_KEY',
        'sam_exclusions': 'SAM_GOV_API_KEY',
        'uk_companies_house': 'UK_COMPANIES_HOUSE_API_KEY',
        'opencorporates': 'OPENCORPORATES_API_KEY',
    })
    domain_age_lookup: bool = True

    def timeout_for(self, provider_name: str) -> float:
        return float(self.timeouts.get(provider_name, self.timeout_seconds))

    def api_key(self, provider_name: str) -> str:
        env_name = self.api_key_env.get(provider_name)
        return os.getenv(env_name, "") if env_name else ""


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: str = "logs/diligence.log"
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    audit_log_dir: str = "logs"


@dataclass
class MonitoringConfig:
    """Provider call monitoring"""
    slow_call_threshold_ms: float = 5000.0
    enable_logging: bool = True


@dataclass
class ApiConfig:
    """HTTP boundary settings"""
    run_timeout_seconds: float = 60.0
    disconnect_poll_seconds: float = 0.5


@dataclass
class ReportingConfig:
    """Reporting configuration"""
    output_directory: str = "reports"
    include_audit_trail: bool = True
    html: bool = True


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
        self.matching: MatchingConfig = MatchingConfig()
        self.scoring: ScoringConfig = ScoringConfig()
        self.classification: ClassificationConfig = ClassificationConfig()
        self.providers: ProviderConfig = ProviderConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.monitoring: MonitoringConfig = MonitoringConfig()
        self.api: ApiConfig = ApiConfig()
        self.reporting: ReportingConfig = ReportingConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
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

        self._parse_matching()
        self._parse_scoring()
        self._parse_classification()
        self._parse_providers()
        self._parse_logging()
        self._parse_monitoring()
        self._parse_api()
        self._parse_reporting()
        self._validate()

    def _parse_matching(self) -> None:
        """Parse matching configuration"""
        cfg = self._raw_config.get('matching', {})
        self.matching = MatchingConfig(
            baseline_threshold=cfg.get('baseline_threshold', 0.5),
            authoritative_threshold=cfg.get('authoritative_threshold', 0.25),
            max_edit_distance=cfg.get('max_edit_distance', 3),
            surname_fallback=cfg.get('surname_fallback', True),
            authoritative_datasets=cfg.get('authoritative_datasets', self.matching.authoritative_datasets),
            legal_suffixes=cfg.get('legal_suffixes', self.matching.legal_suffixes),
        )

    def _parse_scoring(self) -> None:
        """Parse scoring configuration

        Delta overrides are merged over the defaults so a config file only
        needs to name the weights it changes.
        """
        cfg = self._raw_config.get('scoring', {})
        deltas = dict(DEFAULT_DELTAS)
        deltas.update(cfg.get('deltas', {}) or {})
        domain_age = dict(self.scoring.domain_age_days)
        domain_age.update(cfg.get('domain_age_days', {}) or {})
        self.scoring = ScoringConfig(deltas=deltas, domain_age_days=domain_age)

    def _parse_classification(self) -> None:
        """Parse classification configuration"""
        cfg = self._raw_config.get('classification', {})
        self.classification = ClassificationConfig(
            green_min=cfg.get('green_min', 86),
            yellow_min=cfg.get('yellow_min', 60),
            red_min=cfg.get('red_min', 31),
            critical_score_cap=cfg.get('critical_score_cap', 25),
        )

    def _parse_providers(self) -> None:
        """Parse provider configuration"""
        cfg = self._raw_config.get('providers', {})
        api_key_env = dict(self.providers.api_key_env)
        api_key_env.update(cfg.get('api_key_env', {}) or {})
        self.providers = ProviderConfig(
            enabled=cfg.get('enabled', self.providers.enabled),
            timeout_seconds=cfg.get('timeout_seconds', 10.0),
            timeouts=cfg.get('timeouts', {}) or {},
            retry_attempts=cfg.get('retry_attempts', 2),
            max_workers=cfg.get('max_workers', 8),
            user_agent=cfg.get('user_agent', self.providers.user_agent),
            api_key_env=api_key_env,
            domain_age_lookup=cfg.get('domain_age_lookup', True),
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._raw_config.get('logging', {})
        self.logging = LoggingConfig(
            level=cfg.get('level', 'INFO'),
            file=cfg.get('file', 'logs/diligence.log'),
            console=cfg.get('console', True),
            format=cfg.get('format', self.logging.format),
            audit_log_dir=cfg.get('audit_log_dir', 'logs'),
        )

    def _parse_monitoring(self) -> None:
        cfg = self._raw_config.get('monitoring', {})
        self.monitoring = MonitoringConfig(
            slow_call_threshold_ms=cfg.get('slow_call_threshold_ms', 5000.0),
            enable_logging=cfg.get('enable_logging', True),
        )

    def _parse_api(self) -> None:
        """Parse API configuration"""
        cfg = self._raw_config.get('api', {})
        self.api = ApiConfig(
            run_timeout_seconds=cfg.get('run_timeout_seconds', 60.0),
            disconnect_poll_seconds=cfg.get('disconnect_poll_seconds', 0.5),
        )

    def _parse_reporting(self) -> None:
        """Parse reporting configuration"""
        cfg = self._raw_config.get('reporting', {})
        self.reporting = ReportingConfig(
            output_directory=cfg.get('output_directory', 'reports'),
            include_audit_trail=cfg.get('include_audit_trail', True),
            html=cfg.get('html', True),
        )

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
        """Export configuration as dictionary (API keys are never exported)"""
        return {
            'matching': {
                'baseline_threshold': self.matching.baseline_threshold,
                'authoritative_threshold': self.matching.authoritative_threshold,
                'max_edit_distance': self.matching.max_edit_distance,
                'surname_fallback': self.matching.surname_fallback,
                'authoritative_datasets': self.matching.authoritative_datasets,
            },
            'scoring': {
                'deltas': self.scoring.deltas,
                'domain_age_days': self.scoring.domain_age_days,
            },
            'classification': {
                'green_min': self.classification.green_min,
                'yellow_min': self.classification.yellow_min,
                'red_min': self.classification.red_min,
                'critical_score_cap': self.classification.critical_score_cap,
            },
            'providers': {
                'enabled': self.providers.enabled,
                'timeout_seconds': self.providers.timeout_seconds,
                'retry_attempts': self.providers.retry_attempts,
                'max_workers': self.providers.max_workers,
            },
            'monitoring': {
                'slow_call_threshold_ms': self.monitoring.slow_call_threshold_ms,
                'enable_logging': self.monitoring.enable_logging,
            },
            'reporting': {
                'output_directory': self.reporting.output_directory,
                'include_audit_trail': self.reporting.include_audit_trail,
            },
        }

    def _validate(self) -> None:
        """Validate configuration values

        Raises:
            ConfigurationError: on out-of-range thresholds or unordered bands
        """
        for name in ('baseline_threshold', 'authoritative_threshold'):
            value = getattr(self.matching, name)
            if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"matching.{name} must be between 0 and 1, got {value!r}")

        if self.matching.authoritative_threshold > self.matching.baseline_threshold:
            raise ConfigurationError(
                "matching.authoritative_threshold must not exceed matching.baseline_threshold"
            )

        if self.matching.max_edit_distance < 1:
            raise ConfigurationError("matching.max_edit_distance must be at least 1")

        c = self.classification
        if not 0 < c.red_min < c.yellow_min < c.green_min <= 100:
            raise ConfigurationError(
                f"classification bands must satisfy 0 < red_min < yellow_min < green_min <= 100, "
                f"got red_min={c.red_min} yellow_min={c.yellow_min} green_min={c.green_min}"
            )
        if not 0 <= c.critical_score_cap < c.red_min:
            raise ConfigurationError("classification.critical_score_cap must be below red_min")

        for key, value in self.scoring.deltas.items():
            if not isinstance(value, int):
                raise ConfigurationError(f"scoring.deltas.{key} must be an integer, got {value!r}")

        if self.providers.timeout_seconds <= 0:
            raise ConfigurationError("providers.timeout_seconds must be positive")
        if self.providers.max_workers < 1:
            raise ConfigurationError("providers.max_workers must be at least 1")
        if self.providers.retry_attempts < 1:
            raise ConfigurationError("providers.retry_attempts must be at least 1")

        if self.monitoring.slow_call_threshold_ms <= 0:
            raise ConfigurationError("monitoring.slow_call_threshold_ms must be positive")


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)
