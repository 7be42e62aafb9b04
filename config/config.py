import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict

logger = logging.getLogger(__name__)

DEFAULT_RPC_URL = "http://localhost:8545"
HARDHAT_CHAIN_ID = 31337


@dataclass
class NetworkConfig:
    rpc_url: str = DEFAULT_RPC_URL
    mock_chains: Dict[int, str] = field(
        default_factory=lambda: {HARDHAT_CHAIN_ID: DEFAULT_RPC_URL})
    probe_timeout: float = 5.0
    request_timeout: float = 30.0

    def __post_init__(self):
        # YAML keys arrive as strings when written by hand
        self.mock_chains = {int(k): v for k, v in self.mock_chains.items()}


@dataclass
class RelayerConfig:
    url: Optional[str] = None
    verifying_contract_decryption: Optional[str] = None
    gateway_chain_id: Optional[int] = None
    timeout: float = 60.0


@dataclass
class LedgerConfig:
    addresses: Dict[int, str] = field(default_factory=dict)
    min_duration: int = 3600
    min_options: int = 2
    max_options: int = 10
    receipt_poll_interval: float = 1.0
    receipt_timeout: float = 120.0

    def __post_init__(self):
        self.addresses = {int(k): v for k, v in self.addresses.items()}


@dataclass
class AuthorizationConfig:
    duration_days: int = 365


@dataclass
class SystemConfig:
    network: NetworkConfig = field(default_factory=NetworkConfig)
    relayer: RelayerConfig = field(default_factory=RelayerConfig)
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    authorization: AuthorizationConfig = field(
        default_factory=AuthorizationConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    log_level: str = "INFO"
    connection_store_path: Path = field(
        default_factory=lambda: Path(".veilvoting/connection.json"))
    enable_debug_mode: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.connection_store_path = Path(self.connection_store_path)
        if self.enable_debug_mode:
            self.log_level = "DEBUG"


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")

    if config_path.exists():
        try:
            import yaml

            with open(config_path, 'r') as f:
                config_data = yaml.safe_load(f) or {}

            net_data = config_data.get('network', {})
            network = NetworkConfig(
                rpc_url=net_data.get('rpc_url', DEFAULT_RPC_URL),
                mock_chains=net_data.get(
                    'mock_chains', {HARDHAT_CHAIN_ID: DEFAULT_RPC_URL}),
                probe_timeout=net_data.get('probe_timeout', 5.0),
                request_timeout=net_data.get('request_timeout', 30.0)
            )

            relayer_data = config_data.get('relayer', {})
            relayer = RelayerConfig(
                url=relayer_data.get('url'),
                verifying_contract_decryption=relayer_data.get(
                    'verifying_contract_decryption'),
                gateway_chain_id=relayer_data.get('gateway_chain_id'),
                timeout=relayer_data.get('timeout', 60.0)
            )

            ledger_data = config_data.get('ledger', {})
            ledger = LedgerConfig(
                addresses=ledger_data.get('addresses', {}),
                min_duration=ledger_data.get('min_duration', 3600),
                min_options=ledger_data.get('min_options', 2),
                max_options=ledger_data.get('max_options', 10),
                receipt_poll_interval=ledger_data.get(
                    'receipt_poll_interval', 1.0),
                receipt_timeout=ledger_data.get('receipt_timeout', 120.0)
            )

            auth_data = config_data.get('authorization', {})
            authorization = AuthorizationConfig(
                duration_days=auth_data.get('duration_days', 365))

            return SystemConfig(
                network=network,
                relayer=relayer,
                ledger=ledger,
                authorization=authorization,
                log_dir=Path(config_data.get('log_dir', 'logs')),
                log_level=config_data.get('log_level', 'INFO'),
                connection_store_path=Path(config_data.get(
                    'connection_store_path', '.veilvoting/connection.json')),
                enable_debug_mode=config_data.get('enable_debug_mode', False)
            )
        except Exception as e:
            logger.warning(
                f"Could not load config file {config_path}: {e}; using default configuration")

    return SystemConfig()


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")

    import yaml

    config_data = {
        'network': {
            'rpc_url': config.network.rpc_url,
            'mock_chains': dict(config.network.mock_chains),
            'probe_timeout': config.network.probe_timeout,
            'request_timeout': config.network.request_timeout
        },
        'relayer': {
            'url': config.relayer.url,
            'verifying_contract_decryption': config.relayer.verifying_contract_decryption,
            'gateway_chain_id': config.relayer.gateway_chain_id,
            'timeout': config.relayer.timeout
        },
        'ledger': {
            'addresses': dict(config.ledger.addresses),
            'min_duration': config.ledger.min_duration,
            'min_options': config.ledger.min_options,
            'max_options': config.ledger.max_options,
            'receipt_poll_interval': config.ledger.receipt_poll_interval,
            'receipt_timeout': config.ledger.receipt_timeout
        },
        'authorization': {
            'duration_days': config.authorization.duration_days
        },
        'log_dir': str(config.log_dir),
        'log_level': config.log_level,
        'connection_store_path': str(config.connection_store_path),
        'enable_debug_mode': config.enable_debug_mode
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)
