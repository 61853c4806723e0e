# planner/core/bson_utils.py
# Helpers Pydantic v2 pour ObjectId, base model Mongo et conversion d'identifiants reçus de l'extérieur.
from __future__ import annotations

from typing import Any, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, GetCoreSchemaHandler
from pydantic.json_schema import GetJsonSchemaHandler, JsonSchemaValue
from pydantic_core import core_schema

from planner.core.errors import NotFoundError


class PyObjectId(ObjectId):
    """ObjectId compatible Pydantic v2 et OpenAPI.

    Description:
        Accepte une chaîne hex de 24 caractères ou un `ObjectId`, sérialise en chaîne
        en JSON, et expose `type: string, format: objectid` dans le schéma OpenAPI.
    """

    @classmethod
    def __get_pydantic_core_schema__(cls, source_type: Any, handler: GetCoreSchemaHandler) -> core_schema.CoreSchema:
        return core_schema.json_or_python_schema(
            json_schema=core_schema.no_info_plain_validator_function(cls._validate),
            python_schema=core_schema.no_info_plain_validator_function(cls._validate),
            # ObjectId natif en mode python (documents Mongo), chaîne en JSON (API)
            serialization=core_schema.plain_serializer_function_ser_schema(str, when_used="json"),
        )

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema_obj: core_schema.CoreSchema, handler: GetJsonSchemaHandler) -> JsonSchemaValue:
        return {
            "type": "string",
            "format": "objectid",
            "pattern": "^[a-fA-F0-9]{24}$",
            "examples": ["507f1f77bcf86cd799439011"],
        }

    @classmethod
    def _validate(cls, v: Any) -> ObjectId:
        """Valide et convertit en ObjectId.

        Raises:
            ValueError: Si la valeur n'est pas un ObjectId valide.
        """
        if isinstance(v, ObjectId):
            return v
        if isinstance(v, str) and ObjectId.is_valid(v):
            return ObjectId(v)
        raise ValueError(f"Invalid ObjectId: {v!r}")


class MongoBaseModel(BaseModel):
    """BaseModel Pydantic pour documents Mongo.

    Description:
        - Champ `_id` exposé via l'alias `id` (type `PyObjectId`)
        - `populate_by_name` pour relire indifféremment `id` ou `_id`
    """
    id: Optional[PyObjectId] = Field(default=None, alias="_id")

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )


def dump_mongo(model: BaseModel, *, exclude_none: bool = True) -> dict:
    """Dump d'un modèle pour Mongo (dict).

    Description:
        Sérialise en dict prêt pour Mongo, en respectant les alias (`_id`) et en excluant
        les champs `None` par défaut. Les `ObjectId` restent des `ObjectId` (mode python).

    Args:
        model (BaseModel): Modèle Pydantic à sérialiser.
        exclude_none (bool): Exclure les champs None.

    Returns:
        dict: Document sérialisé prêt à insérer/mettre à jour.
    """
    return model.model_dump(by_alias=True, exclude_none=exclude_none)


def to_object_id(value: Any, what: str = "document") -> ObjectId:
    """Convertir un identifiant externe en ObjectId.

    Description:
        Un identifiant mal formé ne peut désigner aucun document : on lève donc
        `NotFoundError` plutôt qu'une erreur technique.

    Raises:
        NotFoundError: Si la valeur n'est pas un ObjectId valide.
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise NotFoundError(f"{what} not found: {value!r}")
