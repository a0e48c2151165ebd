"""Request bodies for the HTTP API.

Fields are optional at the schema level so missing values surface as our own
400 ``invalid_request`` errors rather than framework validation errors.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ScanRequest(BaseModel):
    image_data: Optional[str] = None
    game_hint: Optional[str] = None


class CommitBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_base64: Optional[str] = Field(default=None, alias="imageBase64")
    game: Optional[str] = None
    card_name: Optional[str] = Field(default=None, alias="cardName")
    set_name: Optional[str] = Field(default=None, alias="setName")
    card_number: Optional[str] = Field(default=None, alias="cardNumber")
    product_id: Optional[Union[str, int]] = Field(default=None, alias="productId")


class ImageLookupBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    card_key: Optional[str] = Field(default=None, alias="cardKey")
