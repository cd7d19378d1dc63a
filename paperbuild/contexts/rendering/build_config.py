"""
Build configuration loading.

The checked-in build configuration (paper.yaml by default) tells the
pipeline which document to compile, with which engine and pass sequence,
where the output goes and where it gets published.

Precedence, lowest to highest:
    structured defaults < paper.yaml < environment (.env) < explicit overrides

Example paper.yaml:

    main: paper/main.tex
    engine: pdflatex
    driver: latexmk
    passes: 3
    bibliography_tool: bibtex
    draft: paper/draft.md
    figure_dirs: [paper/figures]
    publish:
      branch: pdf
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from omegaconf import OmegaConf
from omegaconf.errors import OmegaConfBaseException

from paperbuild.contexts.rendering.exceptions import BuildConfigError

load_dotenv()

DEFAULT_CONFIG_NAME = "paper.yaml"

ENGINES = ("pdflatex", "xelatex", "lualatex")
DRIVERS = ("latexmk", "passes")
BIBLIOGRAPHY_TOOLS = ("bibtex", "biber", "none")
MIN_PASSES = 1
MAX_PASSES = 5

LATEXMKRC_NAMES = (".latexmkrc", "latexmkrc")


@dataclass
class PublishConfig:
    """Where and how the PDF is published."""

    branch: str = "gh-pages"
    remote: str = "origin"
    title: Optional[str] = None
    commit_message: str = "Publish {pdf_name} from {revision}"
    author_name: Optional[str] = None
    author_email: Optional[str] = None


@dataclass
class BuildConfig:
    """
    Manuscript build configuration.

    Path fields are stored as written in the file and resolved against
    base_dir (the directory containing the config file) by the *_path
    properties.
    """

    main: str = "main.tex"
    engine: str = "pdflatex"
    driver: str = "latexmk"
    passes: int = 2
    bibliography_tool: str = "bibtex"
    output_dir: str = "build"
    pdf_name: Optional[str] = None
    figure_dirs: List[str] = field(default_factory=list)
    draft: Optional[str] = None
    keep_artifacts: bool = False
    source_date_epoch: Optional[int] = None
    timeout_s: Optional[int] = 600
    publish: PublishConfig = field(default_factory=PublishConfig)
    base_dir: str = "."

    @property
    def root(self) -> Path:
        return Path(self.base_dir).resolve()

    @property
    def main_path(self) -> Path:
        return (self.root / self.main).resolve()

    @property
    def document(self) -> str:
        """Manuscript identifier used in logs and events."""
        return Path(self.main).stem

    @property
    def output_path(self) -> Path:
        return (self.root / self.output_dir).resolve()

    @property
    def pdf_filename(self) -> str:
        return self.pdf_name or f"{self.document}.pdf"

    @property
    def figure_paths(self) -> List[Path]:
        return [(self.root / d).resolve() for d in self.figure_dirs]

    @property
    def draft_path(self) -> Optional[Path]:
        return (self.root / self.draft).resolve() if self.draft else None

    @property
    def latexmkrc_path(self) -> Optional[Path]:
        """Checked-in latexmk configuration next to the main file or config, if any."""
        for directory in (self.main_path.parent, self.root):
            for name in LATEXMKRC_NAMES:
                candidate = directory / name
                if candidate.exists():
                    return candidate
        return None


def _env_overrides() -> Dict[str, Any]:
    """Collect overrides from environment variables that are actually set."""
    overrides: Dict[str, Any] = {}

    if os.getenv("LATEX_ENGINE"):
        overrides["engine"] = os.getenv("LATEX_ENGINE")
    if os.getenv("KEEP_LATEX_ARTIFACTS"):
        overrides["keep_artifacts"] = os.getenv("KEEP_LATEX_ARTIFACTS").lower() == "true"
    if os.getenv("SOURCE_DATE_EPOCH"):
        overrides["source_date_epoch"] = os.getenv("SOURCE_DATE_EPOCH")

    publish = {}
    if os.getenv("PUBLISH_BRANCH"):
        publish["branch"] = os.getenv("PUBLISH_BRANCH")
    if os.getenv("PUBLISH_REMOTE"):
        publish["remote"] = os.getenv("PUBLISH_REMOTE")
    if publish:
        overrides["publish"] = publish

    return overrides


def validate_build_config(config: BuildConfig, config_path: Optional[Path] = None) -> None:
    """
    Check enum-like fields, the pass count and the main file.

    Raises:
        BuildConfigError: On the first invalid field
    """
    if config.engine not in ENGINES:
        raise BuildConfigError(
            f"Unknown LaTeX engine '{config.engine}' (expected one of {', '.join(ENGINES)})",
            config_path=config_path,
            field_name="engine",
        )
    if config.driver not in DRIVERS:
        raise BuildConfigError(
            f"Unknown build driver '{config.driver}' (expected one of {', '.join(DRIVERS)})",
            config_path=config_path,
            field_name="driver",
        )
    if config.bibliography_tool not in BIBLIOGRAPHY_TOOLS:
        raise BuildConfigError(
            f"Unknown bibliography tool '{config.bibliography_tool}' "
            f"(expected one of {', '.join(BIBLIOGRAPHY_TOOLS)})",
            config_path=config_path,
            field_name="bibliography_tool",
        )
    if not MIN_PASSES <= config.passes <= MAX_PASSES:
        raise BuildConfigError(
            f"Number of passes must be between {MIN_PASSES} and {MAX_PASSES}, got {config.passes}",
            config_path=config_path,
            field_name="passes",
        )
    if not config.main_path.exists():
        raise BuildConfigError(
            f"Main TeX file not found: {config.main_path}",
            config_path=config_path,
            field_name="main",
        )


def load_build_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BuildConfig:
    """
    Load, merge and validate the build configuration.

    Args:
        config_path: Path to the YAML config. When None, PAPER_CONFIG (or
                     paper.yaml in the working directory) is used if it exists,
                     otherwise the defaults apply with base_dir set to the cwd.
        overrides: Highest-precedence values (e.g., from CLI flags)

    Returns:
        Validated BuildConfig

    Raises:
        BuildConfigError: If an explicit config file is missing, the YAML does
                          not match the schema, or validation fails
    """
    explicit = config_path is not None
    if config_path is None:
        config_path = Path(os.getenv("PAPER_CONFIG", DEFAULT_CONFIG_NAME))
    config_path = Path(config_path).resolve()

    schema = OmegaConf.structured(BuildConfig)
    layers = []

    if config_path.exists():
        try:
            layers.append(OmegaConf.load(config_path))
        except (OmegaConfBaseException, yaml.YAMLError) as e:
            raise BuildConfigError(f"Could not read config: {e}", config_path=config_path) from e
        base_dir = config_path.parent
    elif explicit:
        raise BuildConfigError("Config file not found", config_path=config_path)
    else:
        config_path = None
        base_dir = Path.cwd()

    layers.append(OmegaConf.create(_env_overrides()))
    if overrides:
        layers.append(OmegaConf.create(overrides))

    try:
        merged = OmegaConf.merge(schema, *layers)
        # Relative paths follow the config file location unless overridden
        if not (overrides and "base_dir" in overrides):
            merged.base_dir = str(base_dir)
        config = OmegaConf.to_object(merged)
    except OmegaConfBaseException as e:
        raise BuildConfigError(f"Invalid configuration: {e}", config_path=config_path) from e

    validate_build_config(config, config_path)
    return config


def save_build_config(config: BuildConfig, path: Path) -> None:
    """Write a configuration back to YAML (base_dir is implied by location and omitted)."""
    container = OmegaConf.to_container(OmegaConf.structured(config))
    container.pop("base_dir", None)
    OmegaConf.save(OmegaConf.create(container), path)
