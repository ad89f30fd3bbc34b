"""Estado en memoria de vida de proceso (indicadores, riesgo)."""
