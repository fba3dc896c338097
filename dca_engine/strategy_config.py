from dataclasses import dataclass, fields
from typing import Dict, Any, Optional

from dca_engine.exceptions import ConfigurationError

def _get_section_param(params: Dict[str, Any], section: str, param_name: str, default_value: Any) -> Any:
    """Get parameter from a nested config section (e.g. ``adaptive_tp``)."""
    section_config = params.get(section) or {}
    return section_config.get(param_name, default_value)

@dataclass(frozen=True)
class StrategyDCAParams:
    # Layer geometry
    start_step_percent: float = 0.4        # Δ1
    spacing_convexity: float = 1.2         # p
    size_growth: float = 1.8               # g
    volatility_ref: float = 1.0            # Vref
    max_layers: int = 5                    # N

    # Fallback exits
    exit_cushion_multiplier: float = 0.6
    stop_loss_percent: float = 2.0

    # Adaptive take profit
    adaptive_tp_enabled: bool = False
    tp_atr_multiplier: float = 2.5
    min_tp_percent: float = 0.5
    max_tp_percent: float = 3.0

    # Adaptive stop loss
    adaptive_sl_enabled: bool = False
    sl_atr_multiplier: float = 3.0
    min_sl_percent: float = 15.0
    max_sl_percent: float = 20.0

    # Capital
    margin_amount_percent: float = 10.0
    leverage: float = 1.0
    max_portfolio_risk_percent: Optional[float] = None

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> 'StrategyDCAParams':
        """Build from a flat parameters dict; ``adaptive_tp``/``adaptive_sl`` sections override flat keys."""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in params.items() if k in known}

        values['adaptive_tp_enabled'] = _get_section_param(
            params, 'adaptive_tp', 'enabled', values.get('adaptive_tp_enabled', cls.adaptive_tp_enabled)
        )
        values['tp_atr_multiplier'] = _get_section_param(
            params, 'adaptive_tp', 'atr_multiplier', values.get('tp_atr_multiplier', cls.tp_atr_multiplier)
        )
        values['min_tp_percent'] = _get_section_param(
            params, 'adaptive_tp', 'min_percent', values.get('min_tp_percent', cls.min_tp_percent)
        )
        values['max_tp_percent'] = _get_section_param(
            params, 'adaptive_tp', 'max_percent', values.get('max_tp_percent', cls.max_tp_percent)
        )

        values['adaptive_sl_enabled'] = _get_section_param(
            params, 'adaptive_sl', 'enabled', values.get('adaptive_sl_enabled', cls.adaptive_sl_enabled)
        )
        values['sl_atr_multiplier'] = _get_section_param(
            params, 'adaptive_sl', 'atr_multiplier', values.get('sl_atr_multiplier', cls.sl_atr_multiplier)
        )
        values['min_sl_percent'] = _get_section_param(
            params, 'adaptive_sl', 'min_percent', values.get('min_sl_percent', cls.min_sl_percent)
        )
        values['max_sl_percent'] = _get_section_param(
            params, 'adaptive_sl', 'max_percent', values.get('max_sl_percent', cls.max_sl_percent)
        )

        try:
            if 'max_layers' in values:
                values['max_layers'] = int(values['max_layers'])
            values['adaptive_tp_enabled'] = bool(values['adaptive_tp_enabled'])
            values['adaptive_sl_enabled'] = bool(values['adaptive_sl_enabled'])
            config = cls(**values)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid strategy parameters: {e}") from e
        return config.validate()

    def validate(self) -> 'StrategyDCAParams':
        """Fail fast on parameters the engine cannot work with."""
        if self.max_layers < 1:
            raise ConfigurationError(f"max_layers ({self.max_layers}) must be >= 1")
        if self.size_growth <= 0:
            raise ConfigurationError(f"size_growth ({self.size_growth}) must be positive")
        if self.spacing_convexity <= 0:
            raise ConfigurationError(f"spacing_convexity ({self.spacing_convexity}) must be positive")
        if self.start_step_percent <= 0:
            raise ConfigurationError(f"start_step_percent ({self.start_step_percent}) must be positive")
        if self.volatility_ref < 0:
            raise ConfigurationError(f"volatility_ref ({self.volatility_ref}) must not be negative")
        if self.leverage < 1:
            raise ConfigurationError(f"leverage ({self.leverage}) must be >= 1")
        if self.margin_amount_percent <= 0:
            raise ConfigurationError(f"margin_amount_percent ({self.margin_amount_percent}) must be positive")
        if self.stop_loss_percent < 0:
            raise ConfigurationError(f"stop_loss_percent ({self.stop_loss_percent}) must not be negative")
        if self.exit_cushion_multiplier < 0:
            raise ConfigurationError(f"exit_cushion_multiplier ({self.exit_cushion_multiplier}) must not be negative")
        if self.adaptive_tp_enabled and self.min_tp_percent > self.max_tp_percent:
            raise ConfigurationError(
                f"min_tp_percent ({self.min_tp_percent}) must be <= max_tp_percent ({self.max_tp_percent})"
            )
        if self.adaptive_sl_enabled and self.min_sl_percent > self.max_sl_percent:
            raise ConfigurationError(
                f"min_sl_percent ({self.min_sl_percent}) must be <= max_sl_percent ({self.max_sl_percent})"
            )
        return self
