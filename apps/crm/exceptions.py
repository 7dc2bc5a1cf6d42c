class PipelineError(Exception):
    """Erro de regra do funil de propostas."""


class InvalidStage(PipelineError):
    """Etapa desconhecida ou de outra agência. Nada foi alterado."""

    def __init__(self, stage_id, message=None):
        self.stage_id = stage_id
        super().__init__(message or f"Etapa {stage_id!r} não encontrada para esta agência.")


class MissingFinancialChoice(PipelineError):
    """Fechamento sem decisão sobre o lançamento financeiro. Nada foi alterado."""

    def __init__(self, message=None):
        super().__init__(
            message or "Fechar a proposta exige financial_choice ('add' ou 'skip')."
        )


class StageConflict(PipelineError):
    """
    A etapa de origem informada não é a etapa atual da proposta
    (tela desatualizada ou movimento concorrente). Nada foi alterado.
    """

    def __init__(self, expected_stage_id, current_stage_id):
        self.expected_stage_id = expected_stage_id
        self.current_stage_id = current_stage_id
        super().__init__(
            f"A proposta está na etapa {current_stage_id}, não em {expected_stage_id}."
        )


class LedgerWriteFailure(PipelineError):
    """
    Efeito colateral que falhou depois da troca de etapa já gravada.

    Não é lançado para fora de transition_proposal: fica em
    TransitionResult.failures para nova tentativa manual.
    """

    def __init__(self, step: str, error: BaseException):
        self.step = step
        self.error = error
        super().__init__(f"{step}: {error}")

    def as_dict(self):
        return {"step": self.step, "error": str(self.error)}
