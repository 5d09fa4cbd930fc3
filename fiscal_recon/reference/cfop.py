"""Static CFOP reference data (code -> description)."""
from __future__ import annotations

from fiscal_recon.domain.keys import clean_numeric_string

NOT_FOUND = "Descrição não encontrada"

CFOP_DESCRIPTIONS: dict[int, str] = {
    1101: "Compra para industrialização ou produção rural",
    1102: "Compra para comercialização",
    1111: "Compra para industrialização de mercadoria recebida anteriormente em consignação industrial",
    1124: "Industrialização efetuada por outra empresa",
    1126: "Compra para utilização na prestação de serviço sujeita ao ICMS",
    1152: "Transferência para comercialização",
    1201: "Devolução de venda de produção do estabelecimento",
    1202: "Devolução de venda de mercadoria adquirida ou recebida de terceiros",
    1251: "Compra de energia elétrica para distribuição ou comercialização",
    1253: "Compra de energia elétrica por estabelecimento comercial",
    1303: "Aquisição de serviço de comunicação por estabelecimento comercial",
    1352: "Aquisição de serviço de transporte por estabelecimento industrial",
    1353: "Aquisição de serviço de transporte por estabelecimento comercial",
    1401: "Compra para industrialização em operação com mercadoria sujeita ao regime de substituição tributária",
    1403: "Compra para comercialização em operação com mercadoria sujeita ao regime de substituição tributária",
    1407: "Compra de mercadoria para uso ou consumo cuja mercadoria está sujeita ao regime de substituição tributária",
    1551: "Compra de bem para o ativo imobilizado",
    1552: "Transferência de bem do ativo imobilizado",
    1556: "Compra de material para uso ou consumo",
    1557: "Transferência de material para uso ou consumo",
    1651: "Compra de combustível ou lubrificante para industrialização subsequente",
    1653: "Compra de combustível ou lubrificante por consumidor ou usuário final",
    1901: "Entrada para industrialização por encomenda",
    1902: "Retorno de mercadoria remetida para industrialização por encomenda",
    1908: "Entrada de bem por conta de contrato de comodato",
    1909: "Retorno de bem remetido por conta de contrato de comodato",
    1910: "Entrada de bonificação, doação ou brinde",
    1913: "Retorno de mercadoria remetida para demonstração",
    1915: "Entrada de mercadoria ou bem recebido para conserto ou reparo",
    1916: "Retorno de mercadoria ou bem remetido para conserto ou reparo",
    1949: "Outra entrada de mercadoria ou prestação de serviço não especificada",
    2101: "Compra para industrialização ou produção rural",
    2102: "Compra para comercialização",
    2124: "Industrialização efetuada por outra empresa",
    2152: "Transferência para comercialização",
    2201: "Devolução de venda de produção do estabelecimento",
    2202: "Devolução de venda de mercadoria adquirida ou recebida de terceiros",
    2353: "Aquisição de serviço de transporte por estabelecimento comercial",
    2403: "Compra para comercialização em operação com mercadoria sujeita ao regime de substituição tributária",
    2407: "Compra de mercadoria para uso ou consumo cuja mercadoria está sujeita ao regime de substituição tributária",
    2551: "Compra de bem para o ativo imobilizado",
    2556: "Compra de material para uso ou consumo",
    2653: "Compra de combustível ou lubrificante por consumidor ou usuário final",
    2908: "Entrada de bem por conta de contrato de comodato",
    2910: "Entrada de bonificação, doação ou brinde",
    2915: "Entrada de mercadoria ou bem recebido para conserto ou reparo",
    2916: "Retorno de mercadoria ou bem remetido para conserto ou reparo",
    2949: "Outra entrada de mercadoria ou prestação de serviço não especificada",
    3101: "Compra para industrialização ou produção rural",
    3102: "Compra para comercialização",
    3551: "Compra de bem para o ativo imobilizado",
    3556: "Compra de material para uso ou consumo",
    3949: "Outra entrada de mercadoria ou prestação de serviço não especificada",
    5101: "Venda de produção do estabelecimento",
    5102: "Venda de mercadoria adquirida ou recebida de terceiros",
    5152: "Transferência de mercadoria adquirida ou recebida de terceiros",
    5201: "Devolução de compra para industrialização ou produção rural",
    5202: "Devolução de compra para comercialização",
    5403: "Venda de mercadoria sujeita ao regime de substituição tributária, na condição de contribuinte substituto",
    5405: "Venda de mercadoria sujeita ao regime de substituição tributária, na condição de contribuinte substituído",
    5411: "Devolução de compra para comercialização em operação com mercadoria sujeita ao regime de substituição tributária",
    5551: "Venda de bem do ativo imobilizado",
    5556: "Devolução de compra de material de uso ou consumo",
    5901: "Remessa para industrialização por encomenda",
    5908: "Remessa de bem por conta de contrato de comodato",
    5909: "Retorno de bem recebido por conta de contrato de comodato",
    5910: "Remessa em bonificação, doação ou brinde",
    5915: "Remessa de mercadoria ou bem para conserto ou reparo",
    5916: "Retorno de mercadoria ou bem recebido para conserto ou reparo",
    5929: "Lançamento efetuado em decorrência de emissão de documento fiscal relativo a operação ou prestação também registrada em equipamento Emissor de Cupom Fiscal - ECF",
    5949: "Outra saída de mercadoria ou prestação de serviço não especificado",
    6101: "Venda de produção do estabelecimento",
    6102: "Venda de mercadoria adquirida ou recebida de terceiros",
    6108: "Venda de mercadoria adquirida ou recebida de terceiros, destinada a não contribuinte",
    6152: "Transferência de mercadoria adquirida ou recebida de terceiros",
    6202: "Devolução de compra para comercialização",
    6403: "Venda de mercadoria sujeita ao regime de substituição tributária, na condição de contribuinte substituto",
    6551: "Venda de bem do ativo imobilizado",
    6910: "Remessa em bonificação, doação ou brinde",
    6915: "Remessa de mercadoria ou bem para conserto ou reparo",
    6949: "Outra saída de mercadoria ou prestação de serviço não especificado",
    7101: "Venda de produção do estabelecimento",
    7102: "Venda de mercadoria adquirida ou recebida de terceiros",
    7949: "Outra saída de mercadoria ou prestação de serviço não especificado",
}


def describe_cfop(cfop: object) -> str:
    digits = clean_numeric_string(cfop)
    if not digits:
        return NOT_FOUND
    return CFOP_DESCRIPTIONS.get(int(digits), NOT_FOUND)


def short_description(cfop: object, words: int = 3) -> str:
    description = describe_cfop(cfop)
    if description == NOT_FOUND:
        return "N/A"
    return " ".join(description.split()[:words])


def validation_label(cfop: object) -> str:
    """Description of ``cfop``, or the bare code when the table does not know it."""
    description = describe_cfop(cfop)
    if description != NOT_FOUND:
        return description
    return clean_numeric_string(cfop) or NOT_FOUND
