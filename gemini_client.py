# medicloud-backend/gemini_client.py

"""
Cliente do Google Gemini usado pelos fluxos de IA (rascunho, resumo e imagem ilustrativa).

Configuração necessária (variáveis de ambiente):
   - GOOGLE_API_KEY (ou GEMINI_API_KEY)
   - GEMINI_TEXT_MODEL   (padrão: gemini-1.5-flash)
   - GEMINI_IMAGE_MODEL  (padrão: gemini-2.0-flash-preview-image-generation)
"""

import base64
import logging
from typing import Optional

from google import genai
from google.genai import types

import config
from errors import GenerationFailed

logger = logging.getLogger(__name__)


class GeminiClient:
    """Wrapper fino sobre o SDK google-genai: um prompt, uma chamada, texto ou imagem de volta."""

    def __init__(self, api_key: Optional[str] = None, text_model: Optional[str] = None, image_model: Optional[str] = None):
        self.api_key = api_key if api_key is not None else config.GOOGLE_API_KEY
        self.text_model = text_model or config.GEMINI_TEXT_MODEL
        self.image_model = image_model or config.GEMINI_IMAGE_MODEL
        self._client = None

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self.api_key:
                raise GenerationFailed(
                    "Nenhuma variável de ambiente GOOGLE_API_KEY ou GEMINI_API_KEY foi definida. A conexão com a IA falhou."
                )
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    def gerar_texto(self, prompt: str) -> str:
        """Envia o prompt ao modelo de texto e retorna o texto gerado, sem alterações."""
        logger.debug(f"Enviando prompt ao modelo {self.text_model} ({len(prompt)} caracteres).")
        response = self._get_client().models.generate_content(
            model=self.text_model,
            contents=prompt,
        )
        return response.text or ""

    def gerar_imagem(self, prompt: str) -> Optional[str]:
        """
        Pede ao modelo de imagem uma resposta com as modalidades TEXT e IMAGE
        e retorna a primeira imagem como data URI (ou None se não houver imagem).
        """
        logger.debug(f"Enviando prompt ao modelo de imagem {self.image_model}.")
        response = self._get_client().models.generate_content(
            model=self.image_model,
            contents=prompt,
            # O modelo de imagem exige as duas modalidades
            config=types.GenerateContentConfig(response_modalities=["TEXT", "IMAGE"]),
        )

        for candidate in response.candidates or []:
            if not candidate.content:
                continue
            for part in candidate.content.parts or []:
                if part.inline_data is not None and part.inline_data.data:
                    mime_type = part.inline_data.mime_type or "image/png"
                    encoded = base64.b64encode(part.inline_data.data).decode("ascii")
                    return f"data:{mime_type};base64,{encoded}"
        return None


# Instância global do cliente (singleton)
_gemini_client_instance = None

def get_gemini_client() -> GeminiClient:
    """Retorna a instância singleton do GeminiClient"""
    global _gemini_client_instance
    if _gemini_client_instance is None:
        _gemini_client_instance = GeminiClient()
    return _gemini_client_instance
