"""Offline stage client adapter.

Use this module as a reference when implementing new provider adapters.
Implement BaseStageClient and register the provider in StageClientFactory.
"""

import json
from typing import ClassVar

from compliance_worker.stages.client_base import BaseStageClient
from compliance_worker.stages.exceptions import StageOutputError


class ExampleClientAdapter(BaseStageClient):
    """Example adapter that returns a fixed valid response for each stage schema.

    No network calls. Useful for local development and tests.
    """

    RESPONSES: ClassVar[dict[str, dict[str, object]]] = {
        "summarize": {
            "dataSummary": "Voltage stayed within 0.95-1.05 pu; two short sags recorded.",
        },
        "identify": {
            "relevantResolutions": ["Resolução Normativa ANEEL nº 956/2021 (PRODIST Módulo 8)"],
        },
        "report": {
            "reportMetadata": {
                "title": "Power Quality Compliance Report",
                "author": "Energy Compliance Analyzer",
                "generatedDate": "2024-01-01",
            },
            "tableOfContents": ["Introduction", "Voltage", "Final Considerations"],
            "introduction": {
                "objective": "Assess the measurements against PRODIST Module 8.",
                "overallResultsSummary": "The installation is compliant.",
                "usedNormsOverview": "PRODIST Module 8.",
            },
            "analysisSections": [
                {
                    "title": "Voltage",
                    "content": "Steady-state voltage stayed within the adequate range.",
                    "insights": ["Two short sags did not exceed limits."],
                    "relevantNormsCited": ["PRODIST Módulo 8, Seção 8.1"],
                }
            ],
            "finalConsiderations": "No corrective action required.",
            "bibliography": [{"text": "ANEEL. PRODIST Módulo 8."}],
        },
    }

    def create_chat_completion(
        self,
        *,
        model: str,
        temperature: float,
        system_prompt: str,
        user_prompt: str,
        schema_name: str,
        json_schema: dict[str, object],
    ) -> str:
        _ = model, temperature, system_prompt, user_prompt, json_schema
        response = self.RESPONSES.get(schema_name)
        if response is None:
            raise StageOutputError(f"No example response for schema '{schema_name}'")
        return json.dumps(response, ensure_ascii=False)
