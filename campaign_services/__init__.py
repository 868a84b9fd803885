"""Campaign services: validation, calculation set and the CampaignService façade."""

from campaign_services.campaign_calculations import CampaignCalculator
from campaign_services.campaign_service import CampaignService
from campaign_services.validation import validate_campaign

__all__ = ["CampaignCalculator", "CampaignService", "validate_campaign"]
