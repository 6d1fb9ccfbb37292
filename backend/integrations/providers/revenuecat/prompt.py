"""
Prompt blocks contributed by the RevenueCat provider
"""
from typing import Optional

from integrations.contract import PromptContribution, PromptRequest
from integrations.types import IntegrationConfig

PLACEHOLDER_API_KEY = "YOUR_REVENUECAT_API_KEY"

ARCHITECTURE_RULES = """## MANDATORY ARCHITECTURE

- Do NOT create plan enums or structs with hardcoded price strings
- Display prices only from package.storeProduct.localizedPriceString
- Only SubscriptionManager talks to Purchases.shared
- SubscriptionManager is @Observable, @MainActor, exposes isPremium and packages: [Package]
- Present PaywallView with .fullScreenCover, not .sheet
- Calculate savings from package.storeProduct.price, never hardcode them
"""

PROVISIONED_USER_BLOCK = """REVENUECAT (already provisioned):
Products, entitlements, and offerings are configured in RevenueCat.
CRITICAL: Use RevenueCat Package objects for ALL pricing data. NEVER create custom plan enums with price strings.

"""

TOOLS_USER_BLOCK = """REVENUECAT SETUP (tools available):
Use RevenueCat tools to verify products and offerings are configured before writing Swift code.
CRITICAL: Use RevenueCat Package objects for ALL pricing data. NEVER create custom plan enums with price strings.

"""


def product_const_name(identifier: str) -> str:
    """premium_monthly -> premiumMonthly"""
    parts = identifier.split("_")
    if len(parts) <= 1:
        return identifier
    return parts[0] + "".join(p[:1].upper() + p[1:] for p in parts[1:] if p)


def build_contribution(request: PromptRequest, config: Optional[IntegrationConfig]) -> PromptContribution:
    api_key = config.anon_key if config is not None and config.anon_key else PLACEHOLDER_API_KEY
    plan = request.monetization
    entitlement = plan.entitlement if plan is not None and plan.entitlement else "premium"

    lines = ["", "<revenuecat-config>", "## AppConfig.swift (REQUIRED, create this file exactly)", "", "```swift",
             "import Foundation", "", "enum AppConfig {",
             f'    static let revenueCatAPIKey = "{api_key}"',
             f'    static let entitlementID = "{entitlement}"']
    if plan is not None and plan.products:
        lines.append("")
        lines.append("    enum ProductID {")
        for product in plan.products:
            lines.append(f'        static let {product_const_name(product.identifier)} = "{product.identifier}"')
        lines.append("    }")
    lines.extend(["}", "```", ""])

    lines.extend([
        "## SDK Initialization (in App.init())", "", "```swift", "import RevenueCat", "",
        "Purchases.configure(",
        "    with: Configuration.Builder(withAPIKey: AppConfig.revenueCatAPIKey)",
        "        .with(storeKitVersion: .storeKit2)",
        "        .build()",
        ")", "```", "",
    ])

    if plan is not None and plan.products:
        lines.append("## Products (provisioned in RevenueCat)")
        lines.append("")
        lines.append(f'Entitlement ID: "{entitlement}"')
        lines.append("")
        lines.append("| Identifier | Type | Display Name | Duration |")
        lines.append("|---|---|---|---|")
        for product in plan.products:
            lines.append(f"| {product.identifier} | {product.type} | {product.display_name} | {product.duration or '-'} |")
        lines.append("")

    lines.append(ARCHITECTURE_RULES)
    lines.append("</revenuecat-config>")

    user_block = ""
    if config is not None and config.pat:
        user_block = PROVISIONED_USER_BLOCK if request.backend_provisioned else TOOLS_USER_BLOCK

    return PromptContribution(
        system_block="\n".join(lines) + "\n",
        user_block=user_block,
        backend_provisioned=request.backend_provisioned,
    )


__all__ = ["build_contribution", "product_const_name", "PLACEHOLDER_API_KEY"]
