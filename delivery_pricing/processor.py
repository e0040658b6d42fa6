"""
Calculation Processor - Main Orchestrator

Coordinates the pricing pipeline through discrete, testable steps.
"""

import json
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Any, Dict

from .calculators import (
    ClientOverrideResolver,
    ProfitCalculator,
    RuleEvaluator,
    TierResolver,
)
from .calculators.money import clamp_total
from .defaults import build_default_stores
from .errors import (
    ClientConfigInactive,
    ClientConfigMismatch,
    ClientConfigNotFound,
    StoreTimeout,
    TemplateInactive,
    TemplateNotFound,
    ValidationError,
)
from .history import HistoryRecorder, HistorySink, InMemoryHistorySink
from .models import (
    CalculationHistory,
    CalculationInput,
    CalculationResult,
    ChargeBreakdown,
    ClientConfiguration,
    FlatRate,
    LineItem,
    ProcessingContext,
    RuleName,
    RuleType,
)
from .output import OutputBuilder
from .store import ClientConfigStore, TemplateSnapshot, TemplateStore
from .validators import InputValidator

logger = logging.getLogger(__name__)

AREA_RULE_ITEM = "area_rule"


class CalculationProcessor:
    """
    Main orchestrator for delivery pricing.

    Implements a clear pipeline pattern:
    1. Load Template Snapshot
    2. Validate Input
    3. Load Client Configuration
    4. Resolve Tier
    5. Resolve Client Overrides (or Area Flat Rate)
    6. Evaluate Customer Charges
    7. Evaluate Driver Payments
    8. Calculate Profit
    9. Build Result
    10. Record History
    """

    def __init__(
        self,
        template_store: TemplateStore | None = None,
        client_store: ClientConfigStore | None = None,
        history_sink: HistorySink | None = None,
        background_history: bool = True,
    ):
        if template_store is None or client_store is None:
            default_templates, default_clients = build_default_stores()
            template_store = template_store or default_templates
            client_store = client_store or default_clients

        self.template_store = template_store
        self.client_store = client_store
        self.history_sink = history_sink or InMemoryHistorySink()

        # Initialize all calculators
        self.validator = InputValidator()
        self.tier_resolver = TierResolver()
        self.override_resolver = ClientOverrideResolver()
        self.rule_evaluator = RuleEvaluator()
        self.profit_calculator = ProfitCalculator()
        self.output_builder = OutputBuilder()
        self.history_recorder = HistoryRecorder(self.history_sink, background=background_history)

        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="store-load")

    def calculate(
        self,
        template_id: str,
        calc_input: CalculationInput,
        client_config_id: str | None = None,
        save_history: bool = True,
        timeout: float | None = None,
    ) -> CalculationResult:
        """
        Price one delivery through the complete pipeline.

        Args:
            template_id: Pricing template to evaluate
            calc_input: Order attributes
            client_config_id: Optional client configuration layered on the template
            save_history: Hand the result to the history sink (best-effort)
            timeout: Deadline in seconds for each store load

        Returns:
            CalculationResult with itemized charges, payments and profit
        """
        # Step 1: Load the template as one consistent snapshot
        snapshot = self._load_template(template_id, timeout)

        # Step 2: Validate
        self.validator.validate(calc_input)

        # Step 3: Load the client configuration
        client_config = None
        if client_config_id is not None:
            client_config = self._load_client_config(client_config_id, template_id, timeout)

        ctx = ProcessingContext(
            template=snapshot.template,
            template_version=snapshot.version,
            rules=snapshot.rules,
            calc_input=calc_input,
            client_config=client_config,
        )

        # Step 4: Resolve tier
        ctx.tier = self.tier_resolver.resolve(calc_input.headcount, calc_input.food_cost, ctx.template.tiers)
        logger.debug(
            "Template %s v%d resolved tier %d (headcount rank %d, food cost rank %d)",
            template_id, ctx.template_version, ctx.tier.rank + 1,
            ctx.tier.headcount_rank + 1, ctx.tier.food_cost_rank + 1,
        )

        # Step 5: Resolve client overrides
        ctx.resolution = self.override_resolver.resolve(client_config, ctx.rules, calc_input.delivery_area)

        if isinstance(ctx.resolution, FlatRate):
            ctx.customer, ctx.driver = self._flat_breakdowns(ctx.resolution)
        else:
            customer_rules = ctx.resolution.for_type(RuleType.CUSTOMER_CHARGE)
            driver_rules = ctx.resolution.for_type(RuleType.DRIVER_PAYMENT)
            if ctx.resolution.overridden:
                logger.debug("Client overrides applied to: %s", ", ".join(ctx.resolution.overridden))

            # Step 6: Evaluate customer charges; tips paid to the driver are billed through
            driver_takes_tips = any(r.rule_name == RuleName.TIPS.value for r in driver_rules)
            ctx.customer = self.rule_evaluator.evaluate(
                customer_rules, calc_input, ctx.tier, pass_through_tips=driver_takes_tips
            )

            # Step 7: Evaluate driver payments
            ctx.driver = self.rule_evaluator.evaluate(driver_rules, calc_input, ctx.tier)

        # Step 8: Calculate profit
        ctx.profit, ctx.profit_margin = self.profit_calculator.calculate(ctx)

        # Step 9: Build result
        result = self._build_result(ctx)
        logger.debug(
            "Template %s: customer %s, driver %s, profit %s (%s%%)",
            template_id, ctx.customer.total, ctx.driver.total, ctx.profit, ctx.profit_margin,
        )

        # Step 10: Record history off the response path
        if save_history:
            self.history_recorder.submit(self._build_history(ctx, result))

        return result

    def calculate_from_dict(
        self,
        data: Dict[str, Any],
        timeout: float | None = None,
        history_enabled: bool = True,
    ) -> Dict[str, Any]:
        """
        Price a delivery from a raw request dictionary.

        Convenience method for API usage. Expected shape:
            {"template_id", "client_config_id"?, "save_history"?, "input": {...}}
        """
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")

        template_id = data.get("template_id", data.get("templateId"))
        if not template_id:
            raise ValidationError("template_id is required")

        client_config_id = data.get("client_config_id", data.get("clientConfigId"))
        save_history = data.get("save_history", data.get("saveHistory", True))
        if not isinstance(save_history, bool):
            raise ValidationError(f"save_history must be true or false, got: {save_history!r}")
        calc_input = CalculationInput.from_dict(data.get("input", {}))

        result = self.calculate(
            template_id,
            calc_input,
            client_config_id=client_config_id,
            save_history=history_enabled and save_history,
            timeout=timeout,
        )
        return self.output_builder.build(result)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def _load_template(self, template_id: str, timeout: float | None) -> TemplateSnapshot:
        snapshot = self._load(self.template_store.get_template, template_id, timeout)
        if snapshot is None:
            raise TemplateNotFound(f"Template {template_id} not found")
        if not snapshot.template.is_active:
            raise TemplateInactive(f"Template {template_id} is not active")
        if not snapshot.rules:
            raise TemplateNotFound(f"Template {template_id} has no pricing rules")
        return snapshot

    def _load_client_config(self, config_id: str, template_id: str, timeout: float | None) -> ClientConfiguration:
        config = self._load(self.client_store.get_client_config, config_id, timeout)
        if config is None:
            raise ClientConfigNotFound(f"Client configuration {config_id} not found")
        if not config.is_active:
            raise ClientConfigInactive(f"Client configuration {config_id} is not active")
        if config.template_id != template_id:
            raise ClientConfigMismatch(
                f"Client configuration {config_id} belongs to template {config.template_id}, not {template_id}"
            )
        return config

    def _load(self, loader, key: str, timeout: float | None):
        """Run a store load, bounded by the caller's deadline when one is given."""
        if timeout is None:
            return loader(key)

        future = self._executor.submit(loader, key)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            future.cancel()
            raise StoreTimeout(f"Loading {key} did not finish within {timeout}s")

    # -------------------------------------------------------------------------
    # Result assembly
    # -------------------------------------------------------------------------

    def _flat_breakdowns(self, flat: FlatRate) -> tuple[ChargeBreakdown, ChargeBreakdown]:
        """Customer and driver breakdowns for an area-rule match."""
        sides = []
        for amount, label in ((flat.customer_pays, "charge"), (flat.driver_gets, "pay")):
            breakdown = ChargeBreakdown()
            breakdown.add(LineItem(AREA_RULE_ITEM, amount, f"Flat {flat.area_name} {label}"))
            if flat.toll:
                breakdown.add(LineItem(RuleName.BRIDGE_TOLL.value, flat.toll, f"{flat.area_name} toll"))
            breakdown.total = clamp_total(sum(breakdown.items.values()))
            sides.append(breakdown)
        return sides[0], sides[1]

    def _build_result(self, ctx: ProcessingContext) -> CalculationResult:
        return CalculationResult(
            customer_charges=ctx.customer,
            driver_payments=ctx.driver,
            profit=ctx.profit,
            profit_margin=ctx.profit_margin,
            template_id=ctx.template.id,
            template_version=ctx.template_version,
            client_config_id=ctx.client_config.id if ctx.client_config else None,
            area_rule=ctx.resolution.area_name if isinstance(ctx.resolution, FlatRate) else None,
            tier_rank=ctx.tier.rank if ctx.tier else None,
        )

    def _build_history(self, ctx: ProcessingContext, result: CalculationResult) -> CalculationHistory:
        return CalculationHistory(
            template_id=result.template_id,
            template_version=result.template_version,
            client_config_id=result.client_config_id,
            input_snapshot=ctx.calc_input.snapshot(),
            result=self.output_builder.build(result),
            customer_total=result.customer_charges.total,
            driver_total=result.driver_payments.total,
            created_at=datetime.now(timezone.utc),
            user_id=ctx.calc_input.user_id,
            notes=ctx.calc_input.notes,
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def calculate_from_dict(request: Dict[str, Any]) -> Dict[str, Any]:
    """
    Price a delivery from a Python dict against the built-in templates and
    return a Python dict.
    """
    processor = CalculationProcessor()
    return processor.calculate_from_dict(request)


def calculate_from_json(json_input: str) -> str:
    """
    Price a delivery from a JSON string and return a JSON string.
    """
    try:
        request = json.loads(json_input)
        processor = CalculationProcessor()
        result = processor.calculate_from_dict(request)
        return json.dumps(result, indent=2)

    except ValueError as e:
        error_response = {"error": str(e), "status": "validation_failed"}
        return json.dumps(error_response, indent=2)

    except Exception as e:
        error_response = {"error": str(e), "status": "failed"}
        return json.dumps(error_response, indent=2)
