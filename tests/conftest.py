import os, sys
import warnings
from pathlib import Path

# Add src/ to sys.path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

# Ensure required environment variables for Config
os.environ.setdefault("DISCORD_TOKEN", "test-token")
os.environ.setdefault("ROBLOX_API_KEY", "test-roblox-key")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("PERSEUS_CONFIG", str(Path(__file__).resolve().parent / "missing-config.toml"))

# Silence deprecation warnings surfaced from third-party dependencies during tests
warnings.filterwarnings(
    "ignore", category=DeprecationWarning, module=r"^discord\\.player$"
)
warnings.filterwarnings("ignore", "'audioop' is deprecated", DeprecationWarning)


def pytest_configure(config):
    warnings.filterwarnings(
        "ignore", category=DeprecationWarning, module=r"^discord\\.player$"
    )
    warnings.filterwarnings("ignore", "'audioop' is deprecated", DeprecationWarning)
