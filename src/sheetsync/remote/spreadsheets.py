"""Spreadsheet API wrapper.

:class:`SpreadsheetAPI` is a thin async wrapper over the three endpoints the
batch compiler and diff engine need:

* ``POST /spreadsheets/{id}:batchUpdate`` -- apply packed sub-requests.
* ``GET /spreadsheets/{id}?fields=sheets.properties`` -- enumerate sheets.
* ``GET /spreadsheets/{id}/values/{range}`` -- read one sheet's values.

Each method is a single attempt; callers wrap them in a
:class:`~sheetsync.remote.retries.RetryLoop`.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from .transport import AsyncTransport


def a1_sheet_range(title: str) -> str:
    """Return an A1 range addressing a whole sheet by *title*.

    Examples
    --------
    >>> a1_sheet_range("Q1 Budget")
    "'Q1 Budget'"
    >>> a1_sheet_range("Bob's")
    "'Bob''s'"
    """
    return "'" + title.replace("'", "''") + "'"


def extract_sheet_properties(response: dict[str, Any]) -> list[dict[str, Any]]:
    """Extract the ``properties`` object of every sheet, in tab order.

    Parameters
    ----------
    response:
        The JSON dict returned by ``GET /spreadsheets/{id}``.
    """
    return [
        sheet["properties"]
        for sheet in response.get("sheets", [])
        if isinstance(sheet, dict) and "properties" in sheet
    ]


class SpreadsheetAPI:
    """Async wrapper for the Sheets v4 spreadsheet endpoints.

    Parameters
    ----------
    transport:
        A configured :class:`AsyncTransport`.
    """

    def __init__(self, transport: AsyncTransport) -> None:
        self._transport = transport

    async def batch_update(
        self,
        spreadsheet_id: str,
        requests: list[dict[str, Any]],
    ) -> dict[str, Any]:
        """Apply *requests* to a spreadsheet in one call.

        The remote API applies the sub-requests in order and atomically:
        either all of them take effect or none does.

        Returns
        -------
        dict
            The ``batchUpdate`` response (``replies`` in request order).
        """
        return await self._transport.request(
            "POST",
            f"/spreadsheets/{quote(spreadsheet_id, safe='')}:batchUpdate",
            json={"requests": requests},
        )

    async def list_sheets(self, spreadsheet_id: str) -> list[dict[str, Any]]:
        """Return the properties of every sheet, in tab order.

        Each item carries at least ``sheetId`` and ``title``.
        """
        data = await self._transport.request(
            "GET",
            f"/spreadsheets/{quote(spreadsheet_id, safe='')}",
            params={"fields": "sheets.properties"},
        )
        return extract_sheet_properties(data)

    async def get_values(self, spreadsheet_id: str, a1_range: str) -> list[list[Any]]:
        """Read the unformatted values of *a1_range*.

        Returns
        -------
        list[list]
            Row-major values.  Trailing empty rows and cells are omitted by
            the API, so an empty sheet yields ``[]``.
        """
        data = await self._transport.request(
            "GET",
            f"/spreadsheets/{quote(spreadsheet_id, safe='')}/values/{quote(a1_range, safe='')}",
            params={"valueRenderOption": "UNFORMATTED_VALUE", "majorDimension": "ROWS"},
        )
        values: list[list[Any]] = data.get("values", [])
        return values

    async def read_sheet(self, spreadsheet_id: str, title: str) -> list[list[Any]]:
        """Read every value of the sheet named *title*."""
        return await self.get_values(spreadsheet_id, a1_sheet_range(title))
