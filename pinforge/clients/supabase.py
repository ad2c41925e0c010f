"""Supabase (PostgREST) persistence client."""

import csv
import io
import json
import logging
import time
from typing import Any

import requests

from ..config import TABLE_CAMPAIGNS, TABLE_CUSTOM_FONTS, TABLE_GENERATED_PINS, TABLE_TEMPLATES
from ..errors import ConfigurationError
from ..models import Campaign, Template

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Client for the campaigns/templates/generated_pins tables."""

    def __init__(self, url: str, service_key: str):
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.service_key = service_key

    def _get_headers(self) -> dict:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    def _request_with_retry(
        self,
        method: str,
        url: str,
        headers: dict,
        json: dict | list | None = None,
        params: dict | None = None,
        max_retries: int = 5,
    ) -> requests.Response:
        """Make request with exponential backoff on 429 errors."""
        response = None
        for attempt in range(max_retries):
            response = requests.request(method, url, json=json, params=params, headers=headers, timeout=30)

            if response.status_code == 429:
                wait_time = 2 ** attempt
                time.sleep(wait_time)
                continue

            return response

        return response

    def _select(self, table: str, params: dict[str, str]) -> list[dict[str, Any]]:
        url = f"{self.base_url}/{table}"
        try:
            response = self._request_with_retry("GET", url, self._get_headers(), params=params)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise RuntimeError(f"Failed to query {table}: {e}")

    def _select_one(self, table: str, record_id: str, select: str = "*") -> dict[str, Any] | None:
        rows = self._select(table, {"id": f"eq.{record_id}", "select": select})
        return rows[0] if rows else None

    # ------------------------------------------------------------------
    # Reads

    def get_campaign(self, campaign_id: str) -> dict[str, Any] | None:
        return self._select_one(TABLE_CAMPAIGNS, campaign_id)

    def get_template(self, template_id: str) -> Template | None:
        record = self._select_one(TABLE_TEMPLATES, template_id)
        return Template.from_dict(record) if record else None

    def get_custom_font_url(self, family: str) -> str | None:
        """file_url of an uploaded font family, if any."""
        rows = self._select(TABLE_CUSTOM_FONTS, {"family": f"eq.{family}", "select": "family,file_url"})
        return rows[0].get("file_url") if rows else None

    def load_campaign(self, campaign_id: str) -> Campaign:
        """
        Campaign with templates and rows resolved.

        Templates come from the snapshot saved at creation time when present,
        else from template_ids / template_id. Rows come from csv_data, or are
        downloaded from csv_url.

        Raises:
            ConfigurationError: campaign, templates or rows are missing
        """
        record = self.get_campaign(campaign_id)
        if not record:
            raise ConfigurationError(f"Campaign not found: {campaign_id}")

        templates = self._resolve_templates(record)
        if not templates:
            raise ConfigurationError(f"Campaign {campaign_id} has no templates")

        campaign = Campaign.from_record(record, templates)
        if not campaign.rows and campaign.csv_url:
            campaign.rows = self.load_rows(campaign.csv_url)
        if not campaign.rows:
            raise ConfigurationError(f"Campaign {campaign_id} has no data rows")
        return campaign

    def _resolve_templates(self, record: dict[str, Any]) -> list[Template]:
        snapshot = record.get("template_snapshot")
        if snapshot:
            return [Template.from_dict(t) for t in snapshot]

        ids = record.get("template_ids") or ([record["template_id"]] if record.get("template_id") else [])
        templates = []
        for template_id in ids:
            template = self.get_template(template_id)
            if template is None:
                logger.warning(f"Template {template_id} not found, skipping")
                continue
            templates.append(template)
        return templates

    def load_rows(self, csv_url: str) -> list[dict[str, str]]:
        """Download a stored table (CSV, or a JSON array of objects)."""
        try:
            response = requests.get(csv_url, timeout=30)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ConfigurationError(f"Failed to download rows from {csv_url}: {e}")

        text = response.content.decode("utf-8-sig")
        if text.lstrip().startswith("["):
            return json.loads(text)
        return [dict(row) for row in csv.DictReader(io.StringIO(text))]

    # ------------------------------------------------------------------
    # Writes

    def insert_generated_pins(self, pins: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Insert generated_pins rows. Returns inserted records."""
        if not pins:
            return []
        url = f"{self.base_url}/{TABLE_GENERATED_PINS}"
        try:
            response = self._request_with_retry("POST", url, self._get_headers(), json=pins)
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise RuntimeError(f"Failed to insert generated pins: {e}")

    def update_campaign(self, campaign_id: str, fields: dict[str, Any]) -> None:
        url = f"{self.base_url}/{TABLE_CAMPAIGNS}"
        try:
            response = self._request_with_retry(
                "PATCH", url, self._get_headers(), json=fields, params={"id": f"eq.{campaign_id}"}
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise RuntimeError(f"Failed to update campaign {campaign_id}: {e}")
