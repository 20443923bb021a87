"""Report data models."""

from __future__ import annotations

from pydantic import BaseModel, Field


# Sponsored Products campaign columns stored in amazon_sp_ads
SP_CAMPAIGN_COLUMNS = [
    # Dimensions
    "date", "campaignId", "campaignName", "campaignStatus",
    "campaignBudgetAmount", "campaignBudgetType", "campaignBudgetCurrencyCode",
    "campaignRuleBasedBudgetAmount", "campaignBiddingStrategy",
    "campaignApplicableBudgetRuleId", "campaignApplicableBudgetRuleName",
    # Core metrics
    "impressions", "clicks", "cost", "spend", "costPerClick", "clickThroughRate",
    "topOfSearchImpressionShare",
    # Sales
    "sales1d", "sales7d", "sales14d", "sales30d",
    "attributedSalesSameSku1d", "attributedSalesSameSku7d",
    "attributedSalesSameSku14d", "attributedSalesSameSku30d",
    # Purchases
    "purchases1d", "purchases7d", "purchases14d", "purchases30d",
    "purchasesSameSku1d", "purchasesSameSku7d", "purchasesSameSku14d", "purchasesSameSku30d",
    # Units sold
    "unitsSoldClicks1d", "unitsSoldClicks7d", "unitsSoldClicks14d", "unitsSoldClicks30d",
    "unitsSoldSameSku1d", "unitsSoldSameSku7d", "unitsSoldSameSku14d", "unitsSoldSameSku30d",
    # Efficiency
    "acosClicks14d", "roasClicks14d",
    "addToList",
]


class ReportSpec(BaseModel):
    """What to ask the Amazon Ads reporting API for."""
    report_type_id: str
    columns: list[str]
    group_by: list[str]
    ad_product: str = "SPONSORED_PRODUCTS"
    time_unit: str = "DAILY"
    format: str = "GZIP_JSON"


SP_CAMPAIGNS = ReportSpec(report_type_id="spCampaigns", columns=SP_CAMPAIGN_COLUMNS, group_by=["campaign"])


class ReportConfiguration(BaseModel):
    """Report configuration for Amazon Ads async reports."""
    ad_product: str = Field(default="SPONSORED_PRODUCTS", alias="adProduct")
    group_by: list[str] = Field(default=["campaign"], alias="groupBy")
    columns: list[str] = Field(default_factory=lambda: list(SP_CAMPAIGN_COLUMNS))
    report_type_id: str = Field(default="spCampaigns", alias="reportTypeId")
    time_unit: str = Field(default="DAILY", alias="timeUnit")  # DAILY or SUMMARY
    format: str = "GZIP_JSON"

    model_config = {"populate_by_name": True}

    @classmethod
    def from_spec(cls, spec: ReportSpec) -> ReportConfiguration:
        return cls(
            ad_product=spec.ad_product,
            group_by=spec.group_by,
            columns=spec.columns,
            report_type_id=spec.report_type_id,
            time_unit=spec.time_unit,
            format=spec.format,
        )


class CreateReportRequest(BaseModel):
    """Request to create an Amazon Ads async report."""
    name: str
    start_date: str = Field(alias="startDate")
    end_date: str = Field(alias="endDate")
    configuration: ReportConfiguration = Field(default_factory=ReportConfiguration)

    model_config = {"populate_by_name": True}


class SpApiReportRequest(BaseModel):
    """Request to create an SP-API Reports 2021-06-30 report."""
    report_type: str = Field(alias="reportType")
    marketplace_ids: list[str] = Field(alias="marketplaceIds")
    data_start_time: str | None = Field(default=None, alias="dataStartTime")
    data_end_time: str | None = Field(default=None, alias="dataEndTime")
    report_options: dict[str, str] | None = Field(default=None, alias="reportOptions")

    model_config = {"populate_by_name": True}


class ReportStatus(BaseModel):
    """Provider-neutral view of one status check."""
    report_id: str
    status: str
    url: str | None = None
    document_id: str | None = None
    failure_reason: str | None = None


class ReadyReport(BaseModel):
    """A completed report ready for download."""
    report_id: str
    url: str
    compression: str | None = None
